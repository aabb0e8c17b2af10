import dataclasses
import logging

import pytest

from ambulance_dispatch.simulator.dispatch import Dispatch, DispatchStatus
from ambulance_dispatch.simulator.events import (
    EventBus,
    LocationUpdate,
    NewDispatch,
    PathUpdate,
    RoutingFailed,
    StatusUpdate,
    Topic,
)
from ambulance_dispatch.utils.geo_utils import Coordinate


def test_delivers_in_publish_order_to_every_subscriber():
    bus = EventBus()
    first, second = [], []
    bus.subscribe("t", first.append)
    bus.subscribe("t", second.append)

    for i in range(5):
        assert bus.publish("t", i) == 2

    assert first == second == [0, 1, 2, 3, 4]


def test_topics_are_independent():
    bus = EventBus()
    got = []
    bus.subscribe("a", got.append)
    bus.publish("b", 1)
    assert got == []


def test_late_subscriber_misses_earlier_events():
    bus = EventBus()
    bus.publish("t", "early")
    got = []
    bus.subscribe("t", got.append)
    bus.publish("t", "late")
    assert got == ["late"]


def test_unsubscribe_stops_delivery():
    bus = EventBus()
    got = []
    sub = bus.subscribe("t", got.append)
    bus.publish("t", 1)
    sub.unsubscribe()
    sub.unsubscribe()
    bus.publish("t", 2)
    assert got == [1]
    assert bus.subscriber_count("t") == 0


def test_subscription_as_context_manager():
    bus = EventBus()
    got = []
    with bus.subscribe("t", got.append):
        bus.publish("t", 1)
    bus.publish("t", 2)
    assert got == [1]


def test_bus_does_not_deduplicate():
    bus = EventBus()
    got = []
    bus.subscribe(Topic.NEW_DISPATCH, got.append)
    payload = NewDispatch(Dispatch("D1", "n", "p", Coordinate(0, 0)))
    bus.publish(Topic.NEW_DISPATCH, payload)
    bus.publish(Topic.NEW_DISPATCH, payload)
    assert len(got) == 2


def test_failing_handler_does_not_block_others(caplog):
    bus = EventBus()
    got = []

    def broken(_):
        raise RuntimeError("observer bug")

    bus.subscribe("t", broken)
    bus.subscribe("t", got.append)
    with caplog.at_level(logging.ERROR):
        bus.publish("t", 42)
    assert got == [42]
    assert "observer bug" in caplog.text


def test_payloads_are_immutable():
    update = StatusUpdate("D1", DispatchStatus.EN_ROUTE)
    with pytest.raises(dataclasses.FrozenInstanceError):
        update.status = DispatchStatus.ARRIVED


def test_wire_shapes():
    loc = Coordinate(1.5, 2.5)
    assert StatusUpdate("D1", DispatchStatus.ARRIVED).to_dict() == {"dispatchId": "D1", "status": "ARRIVED"}
    assert StatusUpdate("D1", DispatchStatus.ASSIGNED, "AMB-02").to_dict() == {
        "dispatchId": "D1", "status": "ASSIGNED", "ambulanceId": "AMB-02",
    }
    assert LocationUpdate("D1", "AMB-01", loc, "3 mins").to_dict() == {
        "dispatchId": "D1", "ambulanceId": "AMB-01", "location": {"lat": 1.5, "lng": 2.5}, "eta": "3 mins",
    }
    assert PathUpdate("D1", (loc,)).to_dict() == {"dispatchId": "D1", "path": [{"lat": 1.5, "lng": 2.5}]}
    assert PathUpdate("D1", ()).to_dict()["path"] == []
    assert RoutingFailed("D1", DispatchStatus.ASSIGNED, "down").to_dict()["reason"] == "down"
    new = NewDispatch(Dispatch("D1", "John", "123", loc)).to_dict()
    assert new["id"] == "D1" and new["status"] == "PENDING" and new["location"] == loc.to_dict()
