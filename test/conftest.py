import threading
import time
from typing import List, Tuple

import pytest
import requests

from ambulance_dispatch.config import SimulationConfig
from ambulance_dispatch.simulator.ambulance import Ambulance, Facility
from ambulance_dispatch.simulator.events import EventBus, Topic
from ambulance_dispatch.simulator.fleet import FleetRegistry
from ambulance_dispatch.simulator.routing import RouteProvider, RoutingUnavailable, StraightLineRouteProvider
from ambulance_dispatch.simulator.simulator import DispatchSimulator
from ambulance_dispatch.utils.geo_utils import Coordinate


class FailingRouteProvider(RouteProvider):
    """Always fails, optionally only from the ``fail_from``-th call on (1-based)."""

    def __init__(self, fail_from: int = 1):
        self.fail_from = fail_from
        self.calls = 0
        self._inner = StraightLineRouteProvider(segments=2)

    def get_route(self, origin, destination):
        self.calls += 1
        if self.calls >= self.fail_from:
            raise RoutingUnavailable("no route (stub)")
        return self._inner.get_route(origin, destination)


class BlockingRouteProvider(RouteProvider):
    """Holds every request until ``release`` is set."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()
        self._inner = StraightLineRouteProvider(segments=2)

    def get_route(self, origin, destination):
        self.started.set()
        self.release.wait(5)
        return self._inner.get_route(origin, destination)


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self.payload is None:
            raise ValueError("not json")
        return self.payload


class FakeSession:
    """Stands in for ``requests.Session`` in the OSRM provider."""

    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        if self.exc is not None:
            raise self.exc
        return self.response


class EventLog:
    """Records every bus event as (topic, payload), in delivery order."""

    def __init__(self, bus: EventBus):
        self.lock = threading.Lock()
        self.events: List[Tuple[str, object]] = []
        self.subscriptions = [bus.subscribe(t, self._recorder(t)) for t in Topic.ALL]

    def _recorder(self, topic):
        def record(payload):
            with self.lock:
                self.events.append((topic, payload))
        return record

    def of(self, topic, dispatch_id=None):
        with self.lock:
            return [p for t, p in self.events
                    if t == topic and (dispatch_id is None or getattr(p, "dispatch_id", None) == dispatch_id)]

    def statuses(self, dispatch_id):
        return [p.status for p in self.of(Topic.STATUS_UPDATE, dispatch_id)]


def wait_until(predicate, timeout=5.0, interval=0.005):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def fast_config():
    return SimulationConfig(frame_interval=0.0, segment_duration=0.0, loading_dwell=0.0,
                            frames_per_segment_override=5)


@pytest.fixture
def paced_config():
    """Slow enough to interrupt: 10 ms frames, about 20 per segment."""
    return SimulationConfig(frame_interval=0.01, segment_duration=0.2, loading_dwell=0.05)


@pytest.fixture
def facilities():
    return [
        Facility("North Hospital", Coordinate(1.0, 0.0)),
        Facility("South Hospital", Coordinate(-1.0, 0.0)),
    ]


@pytest.fixture
def two_unit_fleet(facilities):
    return FleetRegistry(
        [Ambulance("AMB-01", Coordinate(0.0, 0.0)), Ambulance("AMB-02", Coordinate(1.0, 1.0))],
        facilities,
    )


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def event_log(bus):
    return EventLog(bus)


@pytest.fixture
def make_simulator(two_unit_fleet, bus, fast_config):
    def make(route_provider=None, config=None, fleet=None):
        return DispatchSimulator(
            fleet or two_unit_fleet,
            route_provider or StraightLineRouteProvider(segments=2),
            config or fast_config,
            bus=bus,
        )
    return make
