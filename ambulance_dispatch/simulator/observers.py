"""
Bus subscribers that keep a local, event-reconciled picture of dispatches.
"""
import threading
import time
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

import pandas as pd

from ambulance_dispatch.simulator.dispatch import Dispatch, DispatchStatus
from ambulance_dispatch.simulator.events import (
    EventBus,
    LocationUpdate,
    NewDispatch,
    PathUpdate,
    RoutingFailed,
    StatusUpdate,
    Subscription,
    Topic,
)
from ambulance_dispatch.utils.geo_utils import Coordinate


class DispatchTracker:
    """
    Cached view of dispatches as seen by a requester screen or a unit console.

    Records are copies rebuilt from events and never read back from the engine.
    Pass ``ambulance_id`` to follow only the dispatches of one unit, as its
    console does; a dispatch re-matched to that unit is picked up from the
    first event naming it. Duplicate ``new_dispatch`` events are ignored;
    updates for a dispatch the tracker has never seen are dropped.
    """

    def __init__(self, bus: EventBus, ambulance_id: Optional[str] = None) -> None:
        self.ambulance_id = ambulance_id
        self._lock = threading.Lock()
        self.dispatches: Dict[str, Dispatch] = {}
        self.paths: Dict[str, Tuple[Coordinate, ...]] = {}
        self.unit_locations: Dict[str, Coordinate] = {}
        self.routing_failures: List[RoutingFailed] = []
        self._statuses: Dict[str, List[DispatchStatus]] = {}
        # known dispatches not (yet) held by the followed unit
        self._elsewhere: Dict[str, Dispatch] = {}
        self._trail: List[Dict] = []

        handlers = {
            Topic.NEW_DISPATCH: self._on_new_dispatch,
            Topic.STATUS_UPDATE: self._on_status,
            Topic.LOCATION_UPDATE: self._on_location,
            Topic.PATH_UPDATE: self._on_path,
            Topic.ROUTING_FAILED: self._on_routing_failed,
        }
        self.subscriptions: List[Subscription] = [bus.subscribe(t, h) for t, h in handlers.items()]

    def close(self) -> None:
        for sub in self.subscriptions:
            sub.unsubscribe()

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------
    def _follows(self, ambulance_id: Optional[str]) -> bool:
        return self.ambulance_id is None or ambulance_id == self.ambulance_id

    def _reconcile(self, dispatch_id: str, ambulance_id: Optional[str]) -> Optional[Dispatch]:
        """
        Cached record for ``dispatch_id`` with the unit from the event applied.

        A dispatch held aside because it belonged to no unit (or another unit)
        is adopted once an event shows it on the followed unit, as after a
        re-match. Call with ``_lock`` held.
        """
        cached = self.dispatches.get(dispatch_id)
        if cached is None:
            cached = self._elsewhere.get(dispatch_id)
            if cached is None or ambulance_id is None or not self._follows(ambulance_id):
                return None
            del self._elsewhere[dispatch_id]
            self._statuses[dispatch_id] = [cached.status]
        if ambulance_id is not None and cached.ambulance_id != ambulance_id:
            cached = replace(cached, ambulance_id=ambulance_id)
        self.dispatches[dispatch_id] = cached
        return cached

    def _on_new_dispatch(self, event: NewDispatch) -> None:
        dispatch = event.dispatch
        with self._lock:
            if dispatch.id in self.dispatches or dispatch.id in self._elsewhere:
                return
            if self._follows(dispatch.ambulance_id):
                self.dispatches[dispatch.id] = dispatch
                self._statuses[dispatch.id] = [dispatch.status]
            else:
                self._elsewhere[dispatch.id] = dispatch

    def _on_status(self, event: StatusUpdate) -> None:
        with self._lock:
            cached = self._reconcile(event.dispatch_id, event.ambulance_id)
            if cached is None:
                if event.status.is_terminal:
                    self._elsewhere.pop(event.dispatch_id, None)
                return
            self.dispatches[event.dispatch_id] = replace(cached, status=event.status)
            self._statuses[event.dispatch_id].append(event.status)
            if event.status.is_terminal:
                self.paths.pop(event.dispatch_id, None)

    def _on_location(self, event: LocationUpdate) -> None:
        with self._lock:
            cached = self._reconcile(event.dispatch_id, event.ambulance_id)
            if cached is None:
                return
            self.dispatches[event.dispatch_id] = replace(cached, eta=event.eta)
            self.unit_locations[event.ambulance_id] = event.location
            self._trail.append({
                "dispatch_id": event.dispatch_id,
                "ambulance_id": event.ambulance_id,
                "status": cached.status.value,
                "lat": event.location.lat,
                "lng": event.location.lng,
                "eta": event.eta,
                "t": time.monotonic(),
            })

    def _on_path(self, event: PathUpdate) -> None:
        with self._lock:
            if event.dispatch_id not in self.dispatches:
                return
            if event.path:
                self.paths[event.dispatch_id] = event.path
            else:
                self.paths.pop(event.dispatch_id, None)

    def _on_routing_failed(self, event: RoutingFailed) -> None:
        with self._lock:
            if event.dispatch_id in self.dispatches:
                self.routing_failures.append(event)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, dispatch_id: str) -> Dispatch:
        with self._lock:
            return self.dispatches[dispatch_id]

    def active(self) -> List[Dispatch]:
        with self._lock:
            return [d for d in self.dispatches.values() if not d.is_terminal]

    def status_history(self, dispatch_id: str) -> List[DispatchStatus]:
        with self._lock:
            return list(self._statuses.get(dispatch_id, []))

    def location_history(self, dispatch_id: str) -> List[Coordinate]:
        with self._lock:
            return [Coordinate(r["lat"], r["lng"]) for r in self._trail if r["dispatch_id"] == dispatch_id]

    def to_frame(self) -> pd.DataFrame:
        """Location trail as a DataFrame, one row per location event."""
        with self._lock:
            rows = list(self._trail)
        return pd.DataFrame(rows, columns=["dispatch_id", "ambulance_id", "status", "lat", "lng", "eta", "t"])
