"""
Route providers: turn an (origin, destination) pair into a street-following polyline.
"""
import logging
from typing import List, Optional

import networkx as nx
import numpy as np
import requests

from ambulance_dispatch import config
from ambulance_dispatch.utils.geo_utils import Coordinate, get_osm_graph, lat_lon_to_node, nodes_to_coordinates

logger = logging.getLogger(__name__)

Route = List[Coordinate]


class RoutingUnavailable(RuntimeError):
    """No route could be produced, either because none exists or the provider is unreachable."""


class RouteProvider:
    """Base class; subclasses return a non-empty list of waypoints or raise RoutingUnavailable."""

    def get_route(self, origin: Coordinate, destination: Coordinate) -> Route:
        raise NotImplementedError


class OsrmRouteProvider(RouteProvider):
    """Driving routes from an OSRM server (public demo server by default)."""

    def __init__(self, server_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None) -> None:
        self.server_url = (server_url or config.OSRM_SERVER_URL).rstrip("/")
        self.timeout = timeout or config.OSRM_TIMEOUT_S
        self.session = session or requests.Session()

    def get_route(self, origin: Coordinate, destination: Coordinate) -> Route:
        url = (f"{self.server_url}/route/v1/driving/"
               f"{origin.lng},{origin.lat};{destination.lng},{destination.lat}")
        params = {"overview": "full", "geometries": "geojson"}
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise RoutingUnavailable(f"OSRM request failed: {exc}") from exc

        if not isinstance(data, dict):
            raise RoutingUnavailable(f"OSRM returned {type(data).__name__}, expected an object")
        if data.get("code") != "Ok" or not data.get("routes"):
            raise RoutingUnavailable(f"OSRM found no route: {data.get('code')}")

        # GeoJSON coordinates are [lng, lat]
        try:
            coords = data["routes"][0]["geometry"]["coordinates"] or []
            route = [Coordinate(float(lat), float(lng)) for lng, lat in coords]
        except (TypeError, KeyError, IndexError, ValueError) as exc:
            raise RoutingUnavailable(f"Malformed OSRM geometry: {exc!r}") from exc
        if not route:
            raise RoutingUnavailable("OSRM returned an empty geometry")
        logger.debug("OSRM route: %d points", len(route))
        return route


class GraphRouteProvider(RouteProvider):
    """Shortest paths on an OSM street graph loaded with osmnx."""

    def __init__(self, graph: nx.Graph, weight: str = "length") -> None:
        self.graph = graph
        self.weight = weight

    def get_route(self, origin: Coordinate, destination: Coordinate) -> Route:
        source = lat_lon_to_node(self.graph, origin.lat, origin.lng)
        target = lat_lon_to_node(self.graph, destination.lat, destination.lng)
        try:
            nodes = nx.shortest_path(self.graph, source=source, target=target, weight=self.weight)
        except (nx.NetworkXNoPath, nx.NodeNotFound) as exc:
            raise RoutingUnavailable(f"No path from node {source} to {target}") from exc
        return nodes_to_coordinates(self.graph, nodes)


class StraightLineRouteProvider(RouteProvider):
    """Offline provider: a straight line split into ``segments`` equal pieces."""

    def __init__(self, segments: int = 1) -> None:
        self.segments = max(1, segments)

    def get_route(self, origin: Coordinate, destination: Coordinate) -> Route:
        lats = np.linspace(origin.lat, destination.lat, self.segments + 1)
        lngs = np.linspace(origin.lng, destination.lng, self.segments + 1)
        return [Coordinate(float(lat), float(lng)) for lat, lng in zip(lats, lngs)]


PROVIDERS = ("straight", "osrm", "graph")


def make_route_provider(kind: str,
                        place: Optional[str] = None,
                        center: Optional[Coordinate] = None,
                        straight_segments: int = 20) -> RouteProvider:
    """
    Build the route provider named on the command line.

    ``graph`` downloads the OSM street network for ``place`` (or around
    ``center``) once, up front.
    """
    if kind == "straight":
        return StraightLineRouteProvider(segments=straight_segments)
    if kind == "osrm":
        return OsrmRouteProvider()
    if kind == "graph":
        logger.info("Loading street graph for %s", place or center)
        return GraphRouteProvider(get_osm_graph(place=place, center=center))
    raise ValueError(f"Unknown route provider {kind!r}, expected one of {PROVIDERS}")
