"""
Fleet registry: the single owner of ambulance records and their availability.
"""
import logging
import threading
from typing import Dict, Iterable, List

from ambulance_dispatch.simulator.ambulance import Ambulance, AmbulanceStatus, Facility
from ambulance_dispatch.utils.geo_utils import Coordinate, nearest_of

logger = logging.getLogger(__name__)


class FleetRegistry:
    """
    Holds the ambulances of one session together with the static facility list.

    Flipping a unit between AVAILABLE and BUSY is the only state shared between
    concurrently running dispatches, so every availability change happens under
    ``lock``. The lock is re-entrant; callers that need to combine a selection
    with their own bookkeeping (see ``policies.assign``) may hold it across both.
    """

    def __init__(self, ambulances: Iterable[Ambulance], facilities: Iterable[Facility]) -> None:
        self.lock = threading.RLock()
        self._ambulances: Dict[str, Ambulance] = {}
        for amb in ambulances:
            if amb.id in self._ambulances:
                raise ValueError(f"Duplicate ambulance id {amb.id}")
            self._ambulances[amb.id] = amb

        self.facilities: List[Facility] = list(facilities)
        if not self.facilities:
            raise ValueError("A fleet needs at least one facility to deliver patients to")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get(self, amb_id: str) -> Ambulance:
        return self._ambulances[amb_id]

    def __contains__(self, amb_id: str) -> bool:
        return amb_id in self._ambulances

    def __len__(self) -> int:
        return len(self._ambulances)

    def ambulances(self) -> List[Ambulance]:
        with self.lock:
            return list(self._ambulances.values())

    def available(self) -> List[Ambulance]:
        with self.lock:
            return [amb for amb in self._ambulances.values() if amb.is_available()]

    def assignments(self) -> Dict[str, str]:
        """ambulance id → dispatch id for every BUSY unit."""
        with self.lock:
            return {amb.id: amb.dispatch_id for amb in self._ambulances.values()
                    if amb.status == AmbulanceStatus.BUSY}

    def nearest_facility(self, point: Coordinate) -> Facility:
        return nearest_of(point, self.facilities)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def claim(self, amb_id: str, dispatch_id: str) -> Ambulance:
        """Reserve an AVAILABLE ambulance for a dispatch."""
        with self.lock:
            amb = self._ambulances[amb_id]
            amb.assign(dispatch_id)
            logger.debug("%s claimed by %s", amb_id, dispatch_id)
            return amb

    def release(self, amb_id: str, dispatch_id: str) -> bool:
        """
        Hand a BUSY ambulance back to the pool.

        Only the dispatch that holds the unit can release it; a stale or
        repeated release is ignored and returns False.
        """
        with self.lock:
            amb = self._ambulances[amb_id]
            if amb.status != AmbulanceStatus.BUSY or amb.dispatch_id != dispatch_id:
                return False
            amb.release()
            logger.debug("%s released by %s", amb_id, dispatch_id)
            return True

    def move(self, amb_id: str, location: Coordinate) -> None:
        with self.lock:
            self._ambulances[amb_id].location = location

    def set_offline(self, amb_id: str) -> None:
        """Take an idle unit out of service."""
        with self.lock:
            amb = self._ambulances[amb_id]
            if amb.status == AmbulanceStatus.BUSY:
                raise ValueError(f"{amb_id} is on dispatch {amb.dispatch_id}")
            amb.status = AmbulanceStatus.OFFLINE

    def set_online(self, amb_id: str) -> None:
        with self.lock:
            amb = self._ambulances[amb_id]
            if amb.status == AmbulanceStatus.OFFLINE:
                amb.status = AmbulanceStatus.AVAILABLE

    def snapshot(self) -> List[Dict]:
        with self.lock:
            return [amb.to_dict() for amb in self._ambulances.values()]
