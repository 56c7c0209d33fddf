"""Trip planning request/response schemas."""

from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..config import settings
from ..services.planning.errors import PlannerErrorCode


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SegmentInput(CamelModel):
    segment_id: int = Field(..., gt=0)
    forward_direction: bool = Field(
        default=True,
        description="Ride the segment from its start to its end. False rides it in reverse.",
    )


class PlanRequest(CamelModel):
    segments: List[SegmentInput] = Field(..., min_length=1, max_length=settings.max_segments)
    trip_start: Optional[tuple[float, float]] = Field(
        default=None,
        description="Trip start as [longitude, latitude].",
    )
    start_date: date
    end_date: date
    max_daily_distance_km: float = Field(default=100.0, ge=20, le=300)
    max_daily_elevation_m: float = Field(default=1000.0, ge=200, le=5000)

    @field_validator("trip_start")
    @classmethod
    def _check_trip_start(cls, value: Optional[tuple[float, float]]) -> Optional[tuple[float, float]]:
        if value is None:
            return value
        lon, lat = value
        if not -180.0 <= lon <= 180.0:
            raise ValueError("Trip start longitude must be within [-180, 180].")
        if not -90.0 <= lat <= 90.0:
            raise ValueError("Trip start latitude must be within [-90, 90].")
        return value

    @model_validator(mode="after")
    def _check_dates(self) -> "PlanRequest":
        if self.end_date < self.start_date:
            raise ValueError("endDate must be on or after startDate.")
        span = (self.end_date - self.start_date).days + 1
        if span > settings.max_trip_days:
            raise ValueError(f"Trips are limited to {settings.max_trip_days} days (requested {span}).")
        return self


class SegmentLinkModel(CamelModel):
    id: int
    name: str
    url: str


class LineStringModel(BaseModel):
    type: Literal["LineString"] = "LineString"
    coordinates: List[List[float]]


class DayRouteModel(CamelModel):
    day_number: int
    distance_km: float
    elevation_gain_m: float
    ascent_m: float
    descent_m: float
    geometry: LineStringModel
    segments: List[SegmentLinkModel]
    duration_minutes: float


class ConstraintsModel(CamelModel):
    start_date: date
    end_date: date
    max_daily_distance_km: float
    max_daily_elevation_m: float
    max_days: int


class PlanSuccess(CamelModel):
    ok: Literal[True] = True
    routes: List[DayRouteModel]
    total_distance_km: float
    total_elevation_gain_m: float
    total_ascent_m: float
    total_descent_m: float
    total_duration_minutes: float
    constraints: ConstraintsModel


class PlanFailure(CamelModel):
    ok: Literal[False] = False
    error: PlannerErrorCode
    details: str


PlanResponse = Union[PlanSuccess, PlanFailure]
