"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Any, Sequence

from shapely.geometry import Point, Polygon, shape

from ..config import settings

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_km(lat1, lon1, lat2, lon2) * 1000.0


def travel_seconds(distance_m: float, speed_kmh: float | None = None) -> float:
    """Estimated driving time for a straight-line distance at an average speed."""
    speed = speed_kmh or settings.average_speed_kmh
    return distance_m / (speed * 1000.0 / 3600.0)


def route_distance(coordinates: Sequence[tuple[float, float]]) -> tuple[float, float]:
    """Return (distance_m, duration_s) along a polyline of (lat, lon) points."""
    distance = 0.0
    for (lat1, lon1), (lat2, lon2) in zip(coordinates, coordinates[1:]):
        distance += haversine_m(lat1, lon1, lat2, lon2)
    return distance, travel_seconds(distance)


def is_valid_coordinate(lat: Any, lon: Any) -> bool:
    """Latitude/longitude within range and not the (0, 0) placeholder."""
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError):
        return False
    if math.isnan(lat_f) or math.isnan(lon_f):
        return False
    if not (-90.0 <= lat_f <= 90.0 and -180.0 <= lon_f <= 180.0):
        return False
    return not (lat_f == 0.0 and lon_f == 0.0)


def point_in_polygon(lat: float, lon: float, polygon_coords: Sequence[tuple[float, float]]) -> bool:
    """Return True if the point is inside the polygon denoted by (lat, lon) pairs."""

    polygon = Polygon([(lng, lat) for lat, lng in polygon_coords])
    return polygon.contains(Point(lon, lat))


def point_in_geojson(lat: float, lon: float, geometry: dict[str, Any]) -> bool:
    """Point containment for a GeoJSON Polygon/MultiPolygon or a Feature wrapping one."""
    if geometry.get("type") == "Feature":
        geometry = geometry.get("geometry") or {}
    if geometry.get("type") not in ("Polygon", "MultiPolygon"):
        return False
    return shape(geometry).intersects(Point(lon, lat))
