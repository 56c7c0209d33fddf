"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Sequence

from shapely.geometry import LineString, box, mapping

from ..models.domain import Bounds, Coordinate

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def path_length_m(coordinates: Sequence[Sequence[float]]) -> float:
    """Great-circle length of a path of (lon, lat[, elevation]) points in meters."""

    total = 0.0
    for previous, current in zip(coordinates, coordinates[1:]):
        total += haversine_km(previous[1], previous[0], current[1], current[0]) * 1000.0
    return total


def linestring_geojson(coordinates: Sequence[Coordinate]) -> dict:
    """GeoJSON LineString for a (lon, lat) path.

    A single point is repeated so that the result is still a valid line.
    """
    if not coordinates:
        raise ValueError("A line needs at least one coordinate.")
    points = list(coordinates) if len(coordinates) > 1 else [coordinates[0], coordinates[0]]
    geometry = mapping(LineString(points))
    return {
        "type": "LineString",
        "coordinates": [[float(lon), float(lat)] for lon, lat in geometry["coordinates"]],
    }


def viewport_area_deg2(bounds: Bounds) -> float:
    """Area of a viewport in square degrees, used to log how large a query was."""

    return box(bounds.sw_lng, bounds.sw_lat, bounds.ne_lng, bounds.ne_lat).area
