import logging
from typing import Callable, List, Optional, Tuple

from ambulance_dispatch.simulator.ambulance import Ambulance
from ambulance_dispatch.simulator.dispatch import Dispatch, DispatchRequest
from ambulance_dispatch.simulator.events import EventBus, NewDispatch, Topic
from ambulance_dispatch.simulator.fleet import FleetRegistry
from ambulance_dispatch.utils.geo_utils import Coordinate, eta, nearest_of

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Dispatch policies
# ---------------------------------------------------------------------------

class NearestDispatchPolicy:
    """Pick the available ambulance closest (planar distance) to the request."""

    def select_ambulance(self, available_ambulances: List[Ambulance], location: Coordinate) -> Optional[Ambulance]:
        if not available_ambulances:
            return None
        return nearest_of(location, available_ambulances)


def assign(request: DispatchRequest,
           fleet: FleetRegistry,
           bus: Optional[EventBus] = None,
           policy: Optional[NearestDispatchPolicy] = None,
           register: Optional[Callable[[Dispatch], None]] = None) -> Tuple[Dispatch, Optional[str]]:
    """
    Create a dispatch for ``request`` and reserve the best ambulance for it.

    Selection, reservation and ``register`` (the caller's dispatch store)
    all run under the fleet lock, so no other caller can observe the unit
    BUSY without the dispatch that holds it. With nothing available the
    dispatch is left PENDING with no ambulance and the fleet is not touched.

    Returns:
        (dispatch, ambulance id or None)
    """
    policy = policy or NearestDispatchPolicy()

    with fleet.lock:
        amb = policy.select_ambulance(fleet.available(), request.location)
        dispatch = Dispatch.from_request(request)
        if amb is not None:
            fleet.claim(amb.id, dispatch.id)
            dispatch = dispatch.assign(amb.id, eta(amb.location, request.location))
        if register is not None:
            register(dispatch)

    if amb is None:
        logger.warning("No ambulance available for %s, left PENDING", dispatch.id)
    else:
        logger.info("Assigned %s to %s (ETA %s)", amb.id, dispatch.id, dispatch.eta)

    if bus is not None:
        bus.publish(Topic.NEW_DISPATCH, NewDispatch(dispatch))
    return dispatch, (amb.id if amb is not None else None)


def rematch(dispatch: Dispatch,
            fleet: FleetRegistry,
            policy: Optional[NearestDispatchPolicy] = None) -> Tuple[Dispatch, Optional[str]]:
    """Try again to find an ambulance for a PENDING dispatch. Publishes nothing."""
    policy = policy or NearestDispatchPolicy()
    with fleet.lock:
        amb = policy.select_ambulance(fleet.available(), dispatch.location)
        if amb is None:
            return dispatch, None
        fleet.claim(amb.id, dispatch.id)
        dispatch = dispatch.assign(amb.id, eta(amb.location, dispatch.location))
    logger.info("Re-matched %s to %s (ETA %s)", dispatch.id, amb.id, dispatch.eta)
    return dispatch, amb.id
