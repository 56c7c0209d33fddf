"""Greedy split of an ordered route into riding days."""

from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

from ...config import settings
from ...models.routing import CostMatrix
from ..events import DayClosed, EventSink, LoggingEventSink, PartitionFailed
from .errors import PartitionError, PlannerErrorCode
from .models import DayPartition, Leg, Ordering, TripConstraints

logger = logging.getLogger(__name__)


def _finite_or_zero(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def _fail(sink: EventSink, code: PlannerErrorCode, details: str, leg_index: Optional[int] = None) -> PartitionError:
    sink.emit(PartitionFailed(code=code.value, details=details, leg_index=leg_index))
    return PartitionError(details, code=code, leg_index=leg_index)


def partition_route(
    ordering: Ordering,
    legs: Sequence[Leg],
    matrix: CostMatrix,
    constraints: TripConstraints,
    *,
    riding_speed_kmh: float | None = None,
    sink: Optional[EventSink] = None,
) -> list[DayPartition]:
    """Assign the ordered legs to consecutive days without exceeding the daily caps.

    A leg is never split. A day's distance counts each leg's length plus the
    transfer that leads into it, except for the first leg of the trip; its
    elevation counts only the legs' own climbing.
    """
    sink = sink or LoggingEventSink()
    speed_kmh = riding_speed_kmh or settings.riding_speed_kmh
    if not ordering.legs:
        raise _fail(sink, PlannerErrorCode.DAILY_LIMIT_EXCEEDED, "No segments to partition.")

    max_distance_m = constraints.max_daily_distance_km * 1000.0
    max_elevation_m = constraints.max_daily_elevation_m
    max_days = constraints.max_days

    partitions: list[DayPartition] = []
    day_legs: list[int] = []
    day_distance = 0.0
    day_elevation = 0.0
    day_duration = 0.0

    def close_day() -> None:
        partition = DayPartition(
            day_number=len(partitions) + 1,
            leg_indices=list(day_legs),
            distance_km=day_distance / 1000.0,
            elevation_gain_m=day_elevation,
            duration_minutes=day_duration / 60.0,
        )
        partitions.append(partition)
        sink.emit(
            DayClosed(
                day_number=partition.day_number,
                leg_count=len(partition.leg_indices),
                distance_km=round(partition.distance_km, 2),
                elevation_gain_m=round(partition.elevation_gain_m, 1),
            )
        )

    previous: Optional[Leg] = None
    for leg_index in ordering.legs:
        leg = legs[leg_index]
        if previous is None:
            transfer_distance = 0.0
            transfer_duration = 0.0
        else:
            transfer_distance = _finite_or_zero(matrix.distance(previous.exit_index, leg.entry_index))
            transfer_duration = _finite_or_zero(matrix.duration(previous.exit_index, leg.entry_index))
        leg_elevation = _finite_or_zero(leg.elevation_gain_m)
        leg_duration = (leg.length_m / 1000.0) / speed_kmh * 3600.0

        if leg.length_m > max_distance_m:
            raise _fail(
                sink,
                PlannerErrorCode.CUSTOM_LIMIT_EXCEEDED,
                f"Segment '{leg.name}' is {leg.length_m / 1000.0:.1f} km long, above the daily limit of "
                f"{constraints.max_daily_distance_km:g} km.",
                leg_index,
            )
        if leg_elevation > max_elevation_m:
            raise _fail(
                sink,
                PlannerErrorCode.CUSTOM_LIMIT_EXCEEDED,
                f"Segment '{leg.name}' climbs {leg_elevation:.0f} m, above the daily limit of "
                f"{max_elevation_m:g} m.",
                leg_index,
            )
        if transfer_distance + leg.length_m > max_distance_m:
            raise _fail(
                sink,
                PlannerErrorCode.SEGMENT_TOO_FAR,
                f"Reaching segment '{leg.name}' takes a {transfer_distance / 1000.0:.1f} km transfer, which with "
                f"the segment exceeds the daily limit of {constraints.max_daily_distance_km:g} km.",
                leg_index,
            )

        exceeds = (
            day_distance + transfer_distance + leg.length_m > max_distance_m
            or day_elevation + leg_elevation > max_elevation_m
        )
        if exceeds and day_legs:
            close_day()
            if len(partitions) >= max_days:
                raise _fail(
                    sink,
                    PlannerErrorCode.NEED_MORE_DAYS,
                    f"Cannot fit all {len(ordering.legs)} segments within {max_days} days under the daily limits.",
                    leg_index,
                )
            day_legs = []
            day_distance = 0.0
            day_elevation = 0.0
            day_duration = 0.0

        day_legs.append(leg_index)
        day_distance += transfer_distance + leg.length_m
        day_elevation += leg_elevation
        day_duration += transfer_duration + leg_duration
        previous = leg

    if day_legs:
        close_day()
    logger.info(f"Partitioned {len(ordering.legs)} segments into {len(partitions)} days (limit {max_days})")
    return partitions
