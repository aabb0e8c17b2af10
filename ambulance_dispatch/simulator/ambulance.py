from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from ambulance_dispatch.utils.geo_utils import Coordinate


class AmbulanceStatus(Enum):
    """ Availability of an ambulance as seen by the fleet registry. """
    AVAILABLE = "AVAILABLE"  # Can be matched to a new request
    BUSY = "BUSY"  # Owned by exactly one in-flight dispatch
    OFFLINE = "OFFLINE"  # Out of service, never matched


class Ambulance:
    """
    Represents an ambulance unit with its current position and availability.

    Instances are owned by a FleetRegistry; other components change them only
    through the registry so that availability and the dispatch reference
    stay consistent.
    """
    def __init__(self,
                 amb_id: str,
                 location: Coordinate,
                 *,
                 name: Optional[str] = None,
                 phone: str = "",
                 status: AmbulanceStatus = AmbulanceStatus.AVAILABLE) -> None:

        self.id = amb_id
        self.name = name or amb_id
        self.phone = phone
        self.location = location
        self.status = status

        # Dispatch specific
        self.dispatch_id: Optional[str] = None

        # Statistics
        self.calls_responded = 0

    # ---------------------------------------------------------------------
    # Availability transitions (called under the registry lock)
    # ---------------------------------------------------------------------

    def assign(self, dispatch_id: str) -> None:
        """Move from AVAILABLE → BUSY."""
        if self.status != AmbulanceStatus.AVAILABLE:
            raise ValueError(f"{self.id} is {self.status.value}, cannot be assigned")
        self.status = AmbulanceStatus.BUSY
        self.dispatch_id = dispatch_id
        self.calls_responded += 1

    def release(self) -> None:
        """Move from BUSY → AVAILABLE."""
        self.status = AmbulanceStatus.AVAILABLE
        self.dispatch_id = None

    def is_available(self) -> bool:
        return self.status == AmbulanceStatus.AVAILABLE

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "location": self.location.to_dict(),
            "status": self.status.value,
            "dispatchId": self.dispatch_id,
            "callsResponded": self.calls_responded,
        }

    def __repr__(self) -> str:
        return f"Ambulance({self.id!r}, {self.status.value}, {self.location.lat:.5f},{self.location.lng:.5f})"


@dataclass(frozen=True)
class Facility:
    """ A hospital that ambulances deliver patients to. Read-only reference data. """
    name: str
    location: Coordinate

    def to_dict(self) -> Dict:
        return {"name": self.name, "location": self.location.to_dict()}
