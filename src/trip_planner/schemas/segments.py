"""Segment exploration schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class SegmentSummaryModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    name: str
    distance: float
    average_grade: float
    elevation_gain: float
    lat_start: float
    lon_start: float
    lat_end: float
    lon_end: float
    climb_category: Optional[str] = None
    polyline: Optional[str] = None
    kom_time: Optional[str] = None


class ExploreResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    segments: List[SegmentSummaryModel]
    cached: bool
