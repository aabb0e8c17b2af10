"""
In-process publish/subscribe bus connecting the dispatch engine to its observers.

Delivery is synchronous: ``publish`` returns after every handler subscribed at
that moment has been called, in subscription order. Nothing is buffered or
replayed, so a late subscriber only sees what is published after it joins.
"""
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ambulance_dispatch.simulator.dispatch import Dispatch, DispatchStatus
from ambulance_dispatch.utils.geo_utils import Coordinate

logger = logging.getLogger(__name__)


class Topic:
    """String constants for bus topics (also the socket event names)."""
    NEW_DISPATCH = "new_dispatch"
    STATUS_UPDATE = "status_update"
    LOCATION_UPDATE = "location_update"
    PATH_UPDATE = "path_update"
    ROUTING_FAILED = "routing_failed"

    ALL = (NEW_DISPATCH, STATUS_UPDATE, LOCATION_UPDATE, PATH_UPDATE, ROUTING_FAILED)


# ---------------------------------------------------------------------------
#  Payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NewDispatch:
    dispatch: Dispatch

    @property
    def dispatch_id(self) -> str:
        return self.dispatch.id

    def to_dict(self) -> Dict:
        return self.dispatch.to_dict()


@dataclass(frozen=True)
class StatusUpdate:
    dispatch_id: str
    status: DispatchStatus
    ambulance_id: Optional[str] = None  # unit holding the dispatch, once there is one

    def to_dict(self) -> Dict:
        data = {"dispatchId": self.dispatch_id, "status": self.status.value}
        if self.ambulance_id is not None:
            data["ambulanceId"] = self.ambulance_id
        return data


@dataclass(frozen=True)
class LocationUpdate:
    dispatch_id: str
    ambulance_id: str
    location: Coordinate
    eta: str

    def to_dict(self) -> Dict:
        return {
            "dispatchId": self.dispatch_id,
            "ambulanceId": self.ambulance_id,
            "location": self.location.to_dict(),
            "eta": self.eta,
        }


@dataclass(frozen=True)
class PathUpdate:
    dispatch_id: str
    path: Tuple[Coordinate, ...]

    def to_dict(self) -> Dict:
        return {"dispatchId": self.dispatch_id, "path": [p.to_dict() for p in self.path]}


@dataclass(frozen=True)
class RoutingFailed:
    dispatch_id: str
    status: DispatchStatus  # phase the dispatch was leaving when routing failed
    reason: str

    def to_dict(self) -> Dict:
        return {"dispatchId": self.dispatch_id, "status": self.status.value, "reason": self.reason}


Handler = Callable[[Any], None]


class Subscription:
    """Handle returned by ``EventBus.subscribe``; call ``unsubscribe`` to stop delivery."""

    def __init__(self, bus: "EventBus", topic: str, handler: Handler) -> None:
        self.bus = bus
        self.topic = topic
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.bus._remove(self)
            self.active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *args) -> None:
        self.unsubscribe()


class EventBus:
    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Subscription]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: Handler) -> Subscription:
        sub = Subscription(self, topic, handler)
        with self._lock:
            self._subscribers[topic].append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.topic, [])
            if sub in subs:
                subs.remove(sub)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))

    def publish(self, topic: str, payload: Any) -> int:
        """Deliver ``payload`` to every current subscriber of ``topic``; returns how many were called."""
        with self._lock:
            subs = list(self._subscribers.get(topic, []))
        logger.debug("[emit] %s %s", topic, payload)
        for sub in subs:
            try:
                sub.handler(payload)
            except Exception:
                logger.exception("Handler %r failed on %s", sub.handler, topic)
        return len(subs)
