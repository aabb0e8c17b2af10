from ambulance_dispatch.simulator.dispatch import Dispatch, DispatchStatus
from ambulance_dispatch.simulator.events import EventBus, LocationUpdate, NewDispatch, StatusUpdate, Topic
from ambulance_dispatch.simulator.observers import DispatchTracker
from ambulance_dispatch.utils.geo_utils import Coordinate

from conftest import FailingRouteProvider


def test_tracks_a_full_dispatch(make_simulator, bus):
    tracker = DispatchTracker(bus)
    sim = make_simulator()
    dispatch = sim.request_dispatch(Coordinate(0.1, 0.1), "John Doe")
    sim.wait(dispatch.id, timeout=5)

    cached = tracker.get(dispatch.id)
    assert cached.status == DispatchStatus.COMPLETED
    assert cached.requester_name == "John Doe"
    assert tracker.status_history(dispatch.id) == [
        DispatchStatus.ASSIGNED, DispatchStatus.EN_ROUTE, DispatchStatus.ARRIVED,
        DispatchStatus.LOADING_PATIENT, DispatchStatus.EN_ROUTE_TO_HOSPITAL, DispatchStatus.COMPLETED,
    ]
    assert tracker.active() == []
    assert dispatch.id not in tracker.paths
    assert tracker.unit_locations["AMB-01"].isclose(Coordinate(1.0, 0.0))
    assert len(tracker.location_history(dispatch.id)) == 20

    frame = tracker.to_frame()
    assert list(frame.columns) == ["dispatch_id", "ambulance_id", "status", "lat", "lng", "eta", "t"]
    assert set(frame["status"]) == {"EN_ROUTE", "EN_ROUTE_TO_HOSPITAL"}


def test_duplicate_new_dispatch_is_ignored():
    bus = EventBus()
    tracker = DispatchTracker(bus)
    d = Dispatch("D1", "n", "p", Coordinate(0, 0))
    bus.publish(Topic.NEW_DISPATCH, NewDispatch(d))
    bus.publish(Topic.STATUS_UPDATE, StatusUpdate("D1", DispatchStatus.CANCELLED))
    bus.publish(Topic.NEW_DISPATCH, NewDispatch(d))

    assert tracker.get("D1").status == DispatchStatus.CANCELLED
    assert tracker.status_history("D1") == [DispatchStatus.PENDING, DispatchStatus.CANCELLED]


def test_updates_for_unknown_dispatch_are_dropped():
    bus = EventBus()
    tracker = DispatchTracker(bus)
    bus.publish(Topic.STATUS_UPDATE, StatusUpdate("GHOST", DispatchStatus.EN_ROUTE))
    bus.publish(Topic.LOCATION_UPDATE, LocationUpdate("GHOST", "AMB-01", Coordinate(0, 0), "2 mins"))
    assert tracker.dispatches == {}
    assert tracker.unit_locations == {}
    assert tracker.to_frame().empty


def test_unit_console_filters_by_ambulance(make_simulator, bus):
    console = DispatchTracker(bus, ambulance_id="AMB-02")
    sim = make_simulator()
    near_one = sim.request_dispatch(Coordinate(0.1, 0.1))
    near_two = sim.request_dispatch(Coordinate(0.9, 0.9))
    sim.wait_all(timeout=5)

    assert near_one.id not in console.dispatches
    assert console.get(near_two.id).status == DispatchStatus.COMPLETED


def test_records_routing_failures(make_simulator, bus):
    tracker = DispatchTracker(bus)
    sim = make_simulator(route_provider=FailingRouteProvider())
    dispatch = sim.request_dispatch(Coordinate(0.1, 0.1))
    sim.wait(dispatch.id, timeout=5)

    assert [f.dispatch_id for f in tracker.routing_failures] == [dispatch.id]
    assert tracker.get(dispatch.id).status == DispatchStatus.COMPLETED


def test_close_stops_tracking():
    bus = EventBus()
    tracker = DispatchTracker(bus)
    tracker.close()
    bus.publish(Topic.NEW_DISPATCH, NewDispatch(Dispatch("D1", "n", "p", Coordinate(0, 0))))
    assert tracker.dispatches == {}
    assert all(bus.subscriber_count(t) == 0 for t in Topic.ALL)


def test_rematch_reaches_tracker_and_unit_console(make_simulator, bus):
    tracker = DispatchTracker(bus)
    console = DispatchTracker(bus, ambulance_id="AMB-02")
    sim = make_simulator()
    sim.fleet.claim("AMB-01", "X")
    sim.fleet.claim("AMB-02", "Y")
    dispatch = sim.request_dispatch(Coordinate(0.9, 0.9))
    assert tracker.get(dispatch.id).ambulance_id is None
    assert dispatch.id not in console.dispatches

    sim.fleet.release("AMB-02", "Y")
    sim.rematch(dispatch.id)
    sim.wait(dispatch.id, timeout=5)

    assert tracker.get(dispatch.id).ambulance_id == "AMB-02"
    adopted = console.get(dispatch.id)
    assert adopted.ambulance_id == "AMB-02"
    assert adopted.status == DispatchStatus.COMPLETED
    assert console.status_history(dispatch.id)[:3] == [
        DispatchStatus.PENDING, DispatchStatus.ASSIGNED, DispatchStatus.EN_ROUTE,
    ]
    assert len(console.location_history(dispatch.id)) == 20


def test_location_update_fills_in_unit():
    bus = EventBus()
    tracker = DispatchTracker(bus)
    bus.publish(Topic.NEW_DISPATCH, NewDispatch(Dispatch("D1", "n", "p", Coordinate(0, 0))))
    bus.publish(Topic.LOCATION_UPDATE, LocationUpdate("D1", "AMB-07", Coordinate(0.5, 0.5), "2 mins"))

    cached = tracker.get("D1")
    assert cached.ambulance_id == "AMB-07"
    assert cached.eta == "2 mins"


def test_console_ignores_other_units():
    bus = EventBus()
    console = DispatchTracker(bus, ambulance_id="AMB-02")
    d = Dispatch("D1", "n", "p", Coordinate(0, 0), status=DispatchStatus.ASSIGNED, ambulance_id="AMB-01")
    bus.publish(Topic.NEW_DISPATCH, NewDispatch(d))
    bus.publish(Topic.STATUS_UPDATE, StatusUpdate("D1", DispatchStatus.EN_ROUTE, "AMB-01"))
    bus.publish(Topic.LOCATION_UPDATE, LocationUpdate("D1", "AMB-01", Coordinate(0.5, 0.5), "2 mins"))
    bus.publish(Topic.STATUS_UPDATE, StatusUpdate("D1", DispatchStatus.CANCELLED, "AMB-01"))

    assert console.dispatches == {}
    assert console.status_history("D1") == []
    assert "AMB-01" not in console.unit_locations
