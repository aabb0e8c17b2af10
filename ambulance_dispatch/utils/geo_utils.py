"""
Geographical utilities: coordinates, planar distances, ETA strings, nearest-candidate
lookup and the OSM street-graph helpers used by the graph route provider.
"""
import math
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

import networkx as nx
import numpy as np
import osmnx as ox

KM_PER_DEGREE = 111.0
AVERAGE_SPEED_KM_PER_MIN = 0.42  # ~25 km/h urban response speed
MIN_ETA_LABEL = "Under 1 min"

T = TypeVar("T")


class EmptyCandidateSet(ValueError):
    """nearest_of() was called without any candidates."""


@dataclass(frozen=True)
class Coordinate:
    """Immutable (lat, lng) pair."""

    lat: float
    lng: float

    def isclose(self, other: "Coordinate", tol: float = 1e-9) -> bool:
        return math.isclose(self.lat, other.lat, abs_tol=tol) and math.isclose(self.lng, other.lng, abs_tol=tol)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lng)

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: dict) -> "Coordinate":
        return cls(float(data["lat"]), float(data["lng"]))


def _located(candidate) -> Coordinate:
    if isinstance(candidate, Coordinate):
        return candidate
    return candidate.location


def distance(a: Coordinate, b: Coordinate) -> float:
    """Planar (not great-circle) distance in degrees."""
    return float(np.hypot(a.lat - b.lat, a.lng - b.lng))


def distance_km(a: Coordinate, b: Coordinate) -> float:
    return distance(a, b) * KM_PER_DEGREE


def eta_minutes(a: Coordinate, b: Coordinate, speed_km_per_min: float = AVERAGE_SPEED_KM_PER_MIN) -> int:
    """Whole minutes (rounded up) to cover the planar distance at a constant speed."""
    return int(math.ceil(distance_km(a, b) / speed_km_per_min))


def eta(a: Coordinate, b: Coordinate, speed_km_per_min: float = AVERAGE_SPEED_KM_PER_MIN) -> str:
    """
    Display string for the travel time between two points.

    Anything up to one minute (including identical points) is shown as
    "Under 1 min"; never a zero or negative duration.
    """
    mins = eta_minutes(a, b, speed_km_per_min)
    if mins <= 1:
        return MIN_ETA_LABEL
    return f"{mins} mins"


def nearest_of(point: Coordinate, candidates: Iterable[T], key: Optional[Callable[[T], Coordinate]] = None) -> T:
    """
    Return the candidate closest to ``point``.

    Candidates may be Coordinates or anything with a ``location`` attribute;
    pass ``key`` to extract the coordinate otherwise. Ties go to the first
    candidate encountered.

    Raises:
        EmptyCandidateSet: if there are no candidates
    """
    items = list(candidates)
    if not items:
        raise EmptyCandidateSet("nearest_of() requires at least one candidate")
    key = key or _located
    coords = np.array([key(c).as_tuple() for c in items], dtype=float)
    dists = np.hypot(coords[:, 0] - point.lat, coords[:, 1] - point.lng)
    # argmin returns the first occurrence of the minimum
    return items[int(np.argmin(dists))]


def interpolate(a: Coordinate, b: Coordinate, progress: float) -> Coordinate:
    """Linear interpolation in coordinate space, progress in [0, 1]."""
    return Coordinate(
        a.lat + (b.lat - a.lat) * progress,
        a.lng + (b.lng - a.lng) * progress,
    )


def path_length_km(path: Sequence[Coordinate]) -> float:
    return sum(distance_km(p, q) for p, q in zip(path, path[1:]))


# ---------------------------------------------------------------------------
#  OSM street graph helpers
# ---------------------------------------------------------------------------

def get_osm_graph(place: Optional[str] = None,
                  center: Optional[Coordinate] = None,
                  dist: float = 8000,
                  network_type: str = 'drive') -> nx.MultiDiGraph:
    """
    Download the street network that GraphRouteProvider routes on.

    Parameters:
        place: Place name geocoded by OSM (e.g., "Bengaluru, India")
        center: Alternatively, the middle of the service area
        dist: Half-width in metres of the area around ``center``
        network_type: osmnx network type. Default is 'drive'

    Returns:
        Unprojected osmnx graph (node ``x``/``y`` are lng/lat)
    """
    if place:
        return ox.graph_from_place(place, network_type=network_type)
    if center is not None:
        return ox.graph_from_point(center.as_tuple(), dist=dist, network_type=network_type)
    raise ValueError("Provide either a place name or a center coordinate for the street graph.")


def lat_lon_to_node(G, lat, lon):
    """
    Convert a lat/long coordinate to the nearest node in the OSMnx graph.

    Parameters:
    G: NetworkX graph from OSMnx
    lat: Latitude
    lon: Longitude

    Returns:
    node_id: The OSM node ID of the nearest node
    """
    return ox.distance.nearest_nodes(G, X=lon, Y=lat)


def node_to_lat_lon(G, node_id):
    """
    Convert a node ID to lat/long coordinates from the OSMnx graph.

    Parameters:
    G: NetworkX graph from OSMnx
    node_id: The ID of the node in the graph

    Returns:
    tuple: (lat, lon) coordinates
    """
    node_data = G.nodes[node_id]
    # OSMnx stores coordinates as (x, y) where x is longitude and y is latitude
    return node_data['y'], node_data['x']


def nodes_to_coordinates(G: nx.Graph, nodes: Sequence) -> List[Coordinate]:
    return [Coordinate(*map(float, node_to_lat_lon(G, n))) for n in nodes]
