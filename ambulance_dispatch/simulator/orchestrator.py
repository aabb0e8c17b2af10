"""
Drives each assigned dispatch through its lifecycle:

    ASSIGNED → EN_ROUTE → ARRIVED → LOADING_PATIENT → EN_ROUTE_TO_HOSPITAL → COMPLETED

with CANCELLED reachable from any non-terminal state. Every dispatch runs on
its own worker thread and only blocks while fetching a route, between movement
frames and during the loading dwell; all three waits observe the dispatch's
cancel event.

A routing failure on either leg ends the dispatch as COMPLETED (after a
``routing_failed`` event) instead of leaving it, and its ambulance, stuck.
Any other error on the worker thread is logged with its traceback and
closed the same way.
The requester therefore sees a completion, not an error state.
"""
import logging
import threading
import time
from typing import Dict, List, Optional, Sequence

from ambulance_dispatch.config import SimulationConfig
from ambulance_dispatch.simulator import policies
from ambulance_dispatch.simulator.dispatch import Dispatch, DispatchStatus, current_eta
from ambulance_dispatch.simulator.events import (
    EventBus,
    LocationUpdate,
    PathUpdate,
    RoutingFailed,
    StatusUpdate,
    Topic,
)
from ambulance_dispatch.simulator.fleet import FleetRegistry
from ambulance_dispatch.simulator.movement import MovementSimulator
from ambulance_dispatch.simulator.routing import RouteProvider, RoutingUnavailable
from ambulance_dispatch.utils.geo_utils import Coordinate

logger = logging.getLogger(__name__)


class DispatchTask:
    """The worker thread of one dispatch and the event used to stop it."""

    def __init__(self, dispatch_id: str) -> None:
        self.dispatch_id = dispatch_id
        self.cancel_event = threading.Event()
        self.thread: Optional[threading.Thread] = None

    def is_alive(self) -> bool:
        return self.thread is not None and self.thread.is_alive()


class DispatchOrchestrator:
    """Canonical store of dispatch records and runner of their state machines."""

    def __init__(
        self,
        fleet: FleetRegistry,
        route_provider: RouteProvider,
        bus: EventBus,
        config: Optional[SimulationConfig] = None,
        *,
        movement: Optional[MovementSimulator] = None,
    ) -> None:
        self.fleet = fleet
        self.route_provider = route_provider
        self.bus = bus
        self.config = config or SimulationConfig()
        self.movement = movement or MovementSimulator(self.config)

        self._lock = threading.Lock()
        self._dispatches: Dict[str, Dispatch] = {}
        self._guards: Dict[str, threading.RLock] = {}
        self._tasks: Dict[str, DispatchTask] = {}

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------
    def register(self, dispatch: Dispatch) -> None:
        with self._lock:
            if dispatch.id in self._dispatches:
                raise ValueError(f"Dispatch {dispatch.id} already registered")
            self._dispatches[dispatch.id] = dispatch
            self._guards[dispatch.id] = threading.RLock()

    def get(self, dispatch_id: str) -> Dispatch:
        with self._lock:
            return self._dispatches[dispatch_id]

    def dispatches(self) -> List[Dispatch]:
        with self._lock:
            return list(self._dispatches.values())

    def _store(self, dispatch: Dispatch) -> None:
        with self._lock:
            self._dispatches[dispatch.id] = dispatch

    def _guard(self, dispatch_id: str) -> threading.RLock:
        with self._lock:
            return self._guards[dispatch_id]

    # ------------------------------------------------------------------
    # Task control
    # ------------------------------------------------------------------
    def start(self, dispatch_id: str) -> Optional[DispatchTask]:
        """Launch the worker thread of an ASSIGNED dispatch; PENDING ones are left alone."""
        dispatch = self.get(dispatch_id)
        if dispatch.status != DispatchStatus.ASSIGNED:
            return None
        with self._lock:
            if dispatch_id in self._tasks:
                raise ValueError(f"Dispatch {dispatch_id} already started")
            task = DispatchTask(dispatch_id)
            self._tasks[dispatch_id] = task
        task.thread = threading.Thread(
            target=self.run,
            args=(dispatch_id, task.cancel_event),
            name=f"dispatch-{dispatch_id}",
            daemon=True,
        )
        task.thread.start()
        return task

    def cancel(self, dispatch_id: str) -> bool:
        """
        Cancel a non-terminal dispatch.

        Releases its ambulance, clears the path and publishes CANCELLED once.
        Returns False when the dispatch had already finished.
        """
        with self._lock:
            task = self._tasks.get(dispatch_id)
        if task is not None:
            task.cancel_event.set()
        cancelled = self._finish(dispatch_id, DispatchStatus.CANCELLED)
        if cancelled:
            logger.info("%s cancelled", dispatch_id)
        return cancelled

    def rematch(self, dispatch_id: str, policy=None) -> Dispatch:
        """Give a PENDING dispatch another chance at an ambulance and start it if one is found."""
        with self._guard(dispatch_id), self.fleet.lock:
            dispatch = self.get(dispatch_id)
            if dispatch.status != DispatchStatus.PENDING:
                return dispatch
            dispatch, amb_id = policies.rematch(dispatch, self.fleet, policy)
            if amb_id is None:
                return dispatch
            self._store(dispatch)
            self.bus.publish(Topic.STATUS_UPDATE,
                             StatusUpdate(dispatch_id, DispatchStatus.ASSIGNED, dispatch.ambulance_id))
        self.start(dispatch_id)
        return dispatch

    def join(self, dispatch_id: str, timeout: Optional[float] = None) -> bool:
        """Wait for a dispatch's worker; True once it has stopped (or never ran)."""
        with self._lock:
            task = self._tasks.get(dispatch_id)
        if task is None or task.thread is None:
            return True
        task.thread.join(timeout)
        return not task.thread.is_alive()

    def join_all(self, timeout: Optional[float] = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            tasks = list(self._tasks.values())
        for task in tasks:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if task.thread is not None:
                task.thread.join(remaining)
        return not any(t.is_alive() for t in tasks)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------
    def run(self, dispatch_id: str, cancel_event: Optional[threading.Event] = None) -> Dispatch:
        """Walk one ASSIGNED dispatch to a terminal status. Runs on the dispatch's worker thread."""
        cancel_event = cancel_event or threading.Event()
        dispatch = self.get(dispatch_id)
        amb_id = dispatch.ambulance_id
        if dispatch.is_terminal:
            # cancelled between start() and the worker getting scheduled
            logger.debug("%s already %s, nothing to run", dispatch_id, dispatch.status.value)
            return dispatch
        if amb_id is None or dispatch.status != DispatchStatus.ASSIGNED:
            raise ValueError(f"{dispatch_id} is {dispatch.status.value}, only ASSIGNED dispatches can run")

        try:
            # PHASE 1: travel to patient
            route = self._fetch_route(dispatch_id, amb_id, dispatch.location, cancel_event)
            if route is None or not self._transition(dispatch_id, DispatchStatus.EN_ROUTE):
                return self.get(dispatch_id)
            self._publish_path(dispatch_id, route)
            if not self._drive(dispatch_id, amb_id, route, cancel_event):
                return self.get(dispatch_id)

            if not self._transition(dispatch_id, DispatchStatus.ARRIVED):
                return self.get(dispatch_id)
            self._publish_path(dispatch_id, [])

            # PHASE 2: loading patient
            if not self._transition(dispatch_id, DispatchStatus.LOADING_PATIENT):
                return self.get(dispatch_id)
            if cancel_event.wait(self.config.loading_dwell):
                return self.get(dispatch_id)

            # PHASE 3: travel to the facility nearest to the pickup point
            facility = self.fleet.nearest_facility(dispatch.location)
            logger.info("%s heading to %s", dispatch_id, facility.name)
            route = self._fetch_route(dispatch_id, amb_id, facility.location, cancel_event)
            if route is None or not self._transition(dispatch_id, DispatchStatus.EN_ROUTE_TO_HOSPITAL):
                return self.get(dispatch_id)
            self._publish_path(dispatch_id, route)
            if not self._drive(dispatch_id, amb_id, route, cancel_event):
                return self.get(dispatch_id)

            self._finish(dispatch_id, DispatchStatus.COMPLETED)
        except RoutingUnavailable as exc:
            self._fail(dispatch_id, exc)
        except Exception as exc:
            logger.exception("Unexpected error while running %s", dispatch_id)
            self._fail(dispatch_id, exc)
        return self.get(dispatch_id)

    def _fetch_route(self, dispatch_id: str, amb_id: str, destination: Coordinate,
                     cancel_event: threading.Event) -> Optional[List[Coordinate]]:
        origin = self.fleet.get(amb_id).location
        route = self.route_provider.get_route(origin, destination)
        if cancel_event.is_set():
            # cancelled while the request was in flight
            logger.debug("%s: discarding route fetched after cancel", dispatch_id)
            return None
        if not route:
            raise RoutingUnavailable("Route provider returned no waypoints")
        return route

    def _drive(self, dispatch_id: str, amb_id: str, route: Sequence[Coordinate],
               cancel_event: threading.Event) -> bool:
        """Move the ambulance along ``route``; False if the dispatch ended meanwhile."""
        facilities = self.fleet.facilities
        for position in self.movement.drive(route, cancel_event):
            with self._guard(dispatch_id):
                dispatch = self.get(dispatch_id)
                if dispatch.is_terminal:
                    return False
                self.fleet.move(amb_id, position)
                eta = current_eta(dispatch.status, position, dispatch.location, facilities)
                self._store(dispatch.with_eta(eta))
                self.bus.publish(Topic.LOCATION_UPDATE, LocationUpdate(dispatch_id, amb_id, position, eta))
        return not cancel_event.is_set() and not self.get(dispatch_id).is_terminal

    def _transition(self, dispatch_id: str, status: DispatchStatus) -> bool:
        """Advance a live dispatch and publish the new status; False if it already ended."""
        with self._guard(dispatch_id):
            dispatch = self.get(dispatch_id)
            if dispatch.is_terminal:
                return False
            self._store(dispatch.advance(status))
            logger.info("%s → %s", dispatch_id, status.value)
            self.bus.publish(Topic.STATUS_UPDATE, StatusUpdate(dispatch_id, status, dispatch.ambulance_id))
            return True

    def _finish(self, dispatch_id: str, status: DispatchStatus) -> bool:
        """Move to a terminal status: release the ambulance, clear the path, publish once."""
        with self._guard(dispatch_id):
            dispatch = self.get(dispatch_id)
            if dispatch.is_terminal:
                return False
            with self.fleet.lock:
                self._store(dispatch.advance(status))
                if dispatch.ambulance_id is not None:
                    self.fleet.release(dispatch.ambulance_id, dispatch_id)
            if status == DispatchStatus.COMPLETED:
                logger.info("%s completed", dispatch_id)
            if dispatch.ambulance_id is not None:
                self._publish_path(dispatch_id, [])
            self.bus.publish(Topic.STATUS_UPDATE, StatusUpdate(dispatch_id, status, dispatch.ambulance_id))
            return True

    def _fail(self, dispatch_id: str, exc: Exception) -> None:
        with self._guard(dispatch_id):
            dispatch = self.get(dispatch_id)
            if dispatch.is_terminal:
                logger.debug("%s: error after %s ignored: %s", dispatch_id, dispatch.status.value, exc)
                return
            logger.error("Routing failed for %s during %s: %s; closing it as COMPLETED",
                         dispatch_id, dispatch.status.value, exc)
            self.bus.publish(Topic.ROUTING_FAILED, RoutingFailed(dispatch_id, dispatch.status, str(exc) or repr(exc)))
            self._finish(dispatch_id, DispatchStatus.COMPLETED)

    def _publish_path(self, dispatch_id: str, path: Sequence[Coordinate]) -> None:
        self.bus.publish(Topic.PATH_UPDATE, PathUpdate(dispatch_id, tuple(path)))
