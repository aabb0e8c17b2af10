"""
Dispatch records and the lifecycle status machine.
"""
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Sequence

from ambulance_dispatch.simulator.ambulance import Facility
from ambulance_dispatch.utils.geo_utils import Coordinate, eta, nearest_of


class DispatchStatus(Enum):
    """ Lifecycle of a dispatch, in the order it is walked through. """
    PENDING = "PENDING"  # No ambulance available at request time
    ASSIGNED = "ASSIGNED"  # Ambulance reserved, route not yet known
    EN_ROUTE = "EN_ROUTE"  # Driving to the patient
    ARRIVED = "ARRIVED"  # On scene
    LOADING_PATIENT = "LOADING_PATIENT"  # Timed dwell on scene
    EN_ROUTE_TO_HOSPITAL = "EN_ROUTE_TO_HOSPITAL"  # Driving to the nearest facility
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (DispatchStatus.COMPLETED, DispatchStatus.CANCELLED)


_RANK = {status: i for i, status in enumerate(DispatchStatus)}


class InvalidTransition(ValueError):
    """A status change that would move a dispatch backwards or out of a terminal state."""


def check_transition(current: DispatchStatus, new: DispatchStatus) -> None:
    if current.is_terminal:
        raise InvalidTransition(f"dispatch already {current.value}, cannot move to {new.value}")
    if new == DispatchStatus.CANCELLED:
        return
    if new.rank <= current.rank:
        raise InvalidTransition(f"{current.value} → {new.value} goes backwards")


@dataclass(frozen=True)
class DispatchRequest:
    """Inbound request from a patient: where to go and who is asking."""
    location: Coordinate
    requester_name: str = "Unknown caller"
    requester_phone: str = ""


def new_dispatch_id() -> str:
    return f"DISP-{uuid.uuid4().hex[:9].upper()}"


@dataclass(frozen=True)
class Dispatch:
    """
    One emergency request and its lifecycle.

    Records are immutable; ``advance`` and ``with_eta`` return new records.
    The request location never changes after creation.
    """
    id: str
    requester_name: str
    requester_phone: str
    location: Coordinate
    status: DispatchStatus = DispatchStatus.PENDING
    ambulance_id: Optional[str] = None
    eta: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    @classmethod
    def from_request(cls, request: DispatchRequest, **kwargs) -> "Dispatch":
        return cls(
            id=kwargs.pop("id", None) or new_dispatch_id(),
            requester_name=request.requester_name,
            requester_phone=request.requester_phone,
            location=request.location,
            **kwargs,
        )

    def advance(self, status: DispatchStatus) -> "Dispatch":
        check_transition(self.status, status)
        return replace(self, status=status)

    def with_eta(self, value: Optional[str]) -> "Dispatch":
        return replace(self, eta=value)

    def assign(self, ambulance_id: str, initial_eta: str) -> "Dispatch":
        """PENDING → ASSIGNED with the given ambulance."""
        check_transition(self.status, DispatchStatus.ASSIGNED)
        return replace(self, status=DispatchStatus.ASSIGNED, ambulance_id=ambulance_id, eta=initial_eta)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "patientName": self.requester_name,
            "patientPhone": self.requester_phone,
            "location": self.location.to_dict(),
            "status": self.status.value,
            "ambulanceId": self.ambulance_id,
            "eta": self.eta,
            "createdAt": int(self.created_at * 1000),
        }


# ---------------------------------------------------------------------------
#  ETA derivation
# ---------------------------------------------------------------------------

def eta_target(status: DispatchStatus,
               position: Coordinate,
               request_location: Coordinate,
               facilities: Sequence[Facility]) -> Coordinate:
    """
    Where the ETA currently points: the patient, or while heading to hospital
    the facility nearest to the ambulance's current position.
    """
    if status == DispatchStatus.EN_ROUTE_TO_HOSPITAL:
        return nearest_of(position, facilities).location
    return request_location


def current_eta(status: DispatchStatus,
                position: Coordinate,
                request_location: Coordinate,
                facilities: Sequence[Facility]) -> str:
    return eta(position, eta_target(status, position, request_location, facilities))
