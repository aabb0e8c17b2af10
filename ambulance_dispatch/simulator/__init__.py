"""
Ambulance Dispatch Simulator Package

This package models the lifecycle of an emergency dispatch: a request is matched
to the nearest available ambulance, which is then driven to the patient, held on
scene while the patient is loaded, and driven on to the nearest hospital. Every
change is published on an in-process event bus so that requester and unit views
stay in sync.

Main Components:
- DispatchSimulator: Session facade (request_dispatch / cancel)
- DispatchOrchestrator: Lifecycle state machine, one worker per dispatch
- FleetRegistry: Owner of ambulances and their availability
- MovementSimulator: Time-paced interpolation along a route
- EventBus: Synchronous publish/subscribe
- Route providers: OSRM, OSM street graph, straight line
"""

from ambulance_dispatch.simulator.ambulance import Ambulance, AmbulanceStatus, Facility
from ambulance_dispatch.simulator.dispatch import Dispatch, DispatchRequest, DispatchStatus, InvalidTransition
from ambulance_dispatch.simulator.events import EventBus, Subscription, Topic
from ambulance_dispatch.simulator.fleet import FleetRegistry
from ambulance_dispatch.simulator.movement import MovementSimulator
from ambulance_dispatch.simulator.observers import DispatchTracker
from ambulance_dispatch.simulator.orchestrator import DispatchOrchestrator
from ambulance_dispatch.simulator.policies import NearestDispatchPolicy, assign
from ambulance_dispatch.simulator.routing import (
    GraphRouteProvider,
    OsrmRouteProvider,
    RouteProvider,
    RoutingUnavailable,
    StraightLineRouteProvider,
    make_route_provider,
)
from ambulance_dispatch.simulator.simulator import DispatchSimulator

__all__ = [
    'DispatchSimulator',
    'DispatchOrchestrator',
    'FleetRegistry',
    'Ambulance',
    'AmbulanceStatus',
    'Facility',
    'Dispatch',
    'DispatchRequest',
    'DispatchStatus',
    'InvalidTransition',
    'EventBus',
    'Subscription',
    'Topic',
    'MovementSimulator',
    'DispatchTracker',
    'NearestDispatchPolicy',
    'assign',
    'RouteProvider',
    'RoutingUnavailable',
    'OsrmRouteProvider',
    'GraphRouteProvider',
    'StraightLineRouteProvider',
    'make_route_provider',
]
