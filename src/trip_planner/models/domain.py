"""Domain models for segments and map viewports."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# (longitude, latitude) in WGS84 degrees.
Coordinate = tuple[float, float]


@dataclass(slots=True, frozen=True)
class SegmentMeta:
    """Metadata of a must-visit segment as reported by the segment service."""

    segment_id: int
    name: str
    length_m: float
    elevation_gain_m: float
    start: Coordinate
    end: Coordinate


@dataclass(slots=True, frozen=True)
class Bounds:
    """Map viewport given by its south-west and north-east corners."""

    sw_lat: float
    sw_lng: float
    ne_lat: float
    ne_lng: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.sw_lat <= 90.0 and -90.0 <= self.ne_lat <= 90.0):
            raise ValueError("Latitude must be within [-90, 90].")
        if not (-180.0 <= self.sw_lng <= 180.0 and -180.0 <= self.ne_lng <= 180.0):
            raise ValueError("Longitude must be within [-180, 180].")
        if self.sw_lat > self.ne_lat:
            raise ValueError("South-west latitude must not exceed north-east latitude.")


@dataclass(slots=True)
class SegmentSummary:
    """Segment listed by the exploration endpoint."""

    segment_id: int
    name: str
    climb_category: Optional[str]
    distance_m: float
    average_grade: float
    elevation_difference_m: float
    start: Coordinate
    end: Coordinate
    encoded_polyline: Optional[str] = None
    kom_time: Optional[str] = None
