"""
Session-level entry point for live ambulance dispatch.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional

from ambulance_dispatch.config import NUM_AMBULANCES, SimulationConfig
from ambulance_dispatch.simulator.ambulance import AmbulanceStatus, Facility
from ambulance_dispatch.simulator.dispatch import Dispatch, DispatchRequest, DispatchStatus
from ambulance_dispatch.simulator.events import EventBus
from ambulance_dispatch.simulator.fleet import FleetRegistry
from ambulance_dispatch.simulator.orchestrator import DispatchOrchestrator
from ambulance_dispatch.simulator.policies import NearestDispatchPolicy, assign
from ambulance_dispatch.simulator.routing import RouteProvider, StraightLineRouteProvider
from ambulance_dispatch.utils.geo_utils import Coordinate
from ambulance_dispatch.utils import seeding

logger = logging.getLogger(__name__)


class DispatchSimulator:
    """
    One dispatch session: the fleet, the bus and the orchestrator wired together.

    Created once at startup and kept for the life of the process; the live view
    and the command-line runner both talk to it only through
    ``request_dispatch`` / ``cancel`` and the bus.
    """

    def __init__(
        self,
        fleet: FleetRegistry,
        route_provider: RouteProvider,
        config: Optional[SimulationConfig] = None,
        *,
        bus: Optional[EventBus] = None,
        dispatch_policy: Optional[NearestDispatchPolicy] = None,
    ) -> None:
        self.fleet = fleet
        self.bus = bus or EventBus()
        self.config = config or SimulationConfig()
        self.dispatch_policy = dispatch_policy or NearestDispatchPolicy()
        self.orchestrator = DispatchOrchestrator(fleet, route_provider, self.bus, self.config)

    @classmethod
    def from_seed(
        cls,
        num_ambulances: int = NUM_AMBULANCES,
        seed: Optional[int] = None,
        *,
        route_provider: Optional[RouteProvider] = None,
        facilities: Optional[Iterable[Facility]] = None,
        center: Optional[Coordinate] = None,
        config: Optional[SimulationConfig] = None,
    ) -> "DispatchSimulator":
        """Build a session around a randomly placed fleet."""
        fleet = FleetRegistry(
            seeding.generate_ambulances(num_ambulances, center=center or seeding.HOSPITAL_LOCATION, seed=seed),
            facilities if facilities is not None else seeding.DEFAULT_FACILITIES,
        )
        return cls(fleet, route_provider or StraightLineRouteProvider(), config)

    # ------------------------------------------------------------------
    # Inbound actions
    # ------------------------------------------------------------------
    def request_dispatch(
        self,
        location: Coordinate,
        requester_name: str = "Unknown caller",
        requester_phone: str = "",
    ) -> Dispatch:
        """Match a new request to the nearest available ambulance and start it moving."""
        request = DispatchRequest(location, requester_name, requester_phone)
        dispatch, amb_id = assign(
            request,
            self.fleet,
            self.bus,
            self.dispatch_policy,
            register=self.orchestrator.register,
        )
        if amb_id is not None:
            self.orchestrator.start(dispatch.id)
        return dispatch

    def cancel(self, dispatch_id: str) -> bool:
        return self.orchestrator.cancel(dispatch_id)

    def rematch(self, dispatch_id: str) -> Dispatch:
        return self.orchestrator.rematch(dispatch_id, self.dispatch_policy)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, dispatch_id: str) -> Dispatch:
        return self.orchestrator.get(dispatch_id)

    def wait(self, dispatch_id: str, timeout: Optional[float] = None) -> Dispatch:
        self.orchestrator.join(dispatch_id, timeout)
        return self.get(dispatch_id)

    def wait_all(self, timeout: Optional[float] = None) -> bool:
        return self.orchestrator.join_all(timeout)

    def active_dispatches(self) -> List[Dispatch]:
        return [d for d in self.orchestrator.dispatches() if not d.is_terminal]

    def get_state(self) -> Dict:
        """Return a JSON-serialisable snapshot of units and live dispatches."""
        with self.fleet.lock:
            ambulances = self.fleet.snapshot()
            dispatches = [d.to_dict() for d in self.active_dispatches()]
        return {
            "ambulances": ambulances,
            "dispatches": dispatches,
            "facilities": [f.to_dict() for f in self.fleet.facilities],
            "statistics": self.statistics(),
        }

    def statistics(self) -> Dict:
        counts = Counter(d.status.value for d in self.orchestrator.dispatches())
        units = Counter(a.status.value for a in self.fleet.ambulances())
        return {
            "dispatches": sum(counts.values()),
            "by_status": {s.value: counts.get(s.value, 0) for s in DispatchStatus},
            "available_ambulances": units.get(AmbulanceStatus.AVAILABLE.value, 0),
            "busy_ambulances": units.get(AmbulanceStatus.BUSY.value, 0),
            "offline_ambulances": units.get(AmbulanceStatus.OFFLINE.value, 0),
            "calls_responded": {a.id: a.calls_responded for a in self.fleet.ambulances()},
        }

    def log_statistics(self) -> None:
        stats = self.statistics()
        logger.info("===== Dispatch statistics =====")
        logger.info("Total dispatches: %d", stats["dispatches"])
        for status, n in stats["by_status"].items():
            if n:
                logger.info("  %s: %d", status, n)
        logger.info("Ambulances available/busy/offline: %d/%d/%d",
                    stats["available_ambulances"], stats["busy_ambulances"], stats["offline_ambulances"])
        for amb_id, n in stats["calls_responded"].items():
            if n:
                logger.info("  %s responded to %d call(s)", amb_id, n)
