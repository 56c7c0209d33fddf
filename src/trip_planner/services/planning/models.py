"""Planning domain models."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from typing import List, Literal, Optional, Sequence

from ...models.domain import Coordinate
from .errors import PlanningTimeoutError


@dataclass(slots=True, frozen=True)
class Leg:
    """A must-visit segment traversed in a fixed direction.

    ``entry_index`` and ``exit_index`` are positions in the waypoint list used
    for the cost matrix.
    """

    segment_id: int
    name: str
    forward_direction: bool
    entry: Coordinate
    exit: Coordinate
    length_m: float
    elevation_gain_m: float
    entry_index: int
    exit_index: int


@dataclass(slots=True)
class Ordering:
    legs: List[int]
    method: Literal["exact", "heuristic"]
    total_distance_m: float
    total_duration_s: float
    solving_time_ms: float


def days_between_inclusive(start: date, end: date) -> int:
    return (end - start).days + 1


@dataclass(slots=True, frozen=True)
class TripConstraints:
    start_date: date
    end_date: date
    max_daily_distance_km: float = 100.0
    max_daily_elevation_m: float = 1000.0
    max_trip_days: int = 14

    @property
    def max_days(self) -> int:
        return max(0, min(days_between_inclusive(self.start_date, self.end_date), self.max_trip_days))


@dataclass(slots=True)
class DayPartition:
    day_number: int
    leg_indices: List[int]
    distance_km: float
    elevation_gain_m: float
    duration_minutes: float


@dataclass(slots=True)
class DaySlice:
    coordinates: List[Coordinate]
    distance_m: float
    elevation_gain_m: float


@dataclass(slots=True)
class StitchedGeometry:
    """One continuous coordinate sequence for the whole trip.

    ``leg_ranges[k]`` is the half-open coordinate range contributed by the
    ``k``-th leg of ``order`` together with the transfer that precedes it.
    The cumulative arrays have one more element than ``order`` and start at 0,
    so the metrics of legs ``i..j`` are ``cumulative[j + 1] - cumulative[i]``.
    """

    order: List[int]
    coordinates: List[Coordinate]
    leg_ranges: List[tuple[int, int]]
    cumulative_distances_m: List[float] = field(default_factory=lambda: [0.0])
    cumulative_elevation_gains_m: List[float] = field(default_factory=lambda: [0.0])

    def _position(self, leg_index: int) -> int:
        try:
            return self.order.index(leg_index)
        except ValueError as exc:
            raise KeyError(f"Leg {leg_index} is not part of the stitched route.") from exc

    def slice_day(self, leg_indices: Sequence[int]) -> DaySlice:
        """Return the geometry and metrics of a run of consecutive legs.

        Days after the first also carry the last point of the previous day so
        that consecutive day geometries join up.
        """
        if not leg_indices:
            raise ValueError("A day needs at least one leg.")
        first = self._position(leg_indices[0])
        last = self._position(leg_indices[-1])
        if last - first + 1 != len(leg_indices):
            raise ValueError("Day legs must be consecutive in the stitched order.")
        start = self.leg_ranges[first][0]
        end = self.leg_ranges[last][1]
        if start > 0:
            start -= 1
        return DaySlice(
            coordinates=list(self.coordinates[start:end]),
            distance_m=self.cumulative_distances_m[last + 1] - self.cumulative_distances_m[first],
            elevation_gain_m=self.cumulative_elevation_gains_m[last + 1] - self.cumulative_elevation_gains_m[first],
        )


class Deadline:
    """Wall-clock deadline shared by the upstream calls of one request."""

    def __init__(self, seconds: float, clock=time.monotonic) -> None:
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self.expires_at

    def check(self, stage: str) -> None:
        if self.expired:
            raise PlanningTimeoutError(f"Request deadline of {self.seconds:.0f}s exceeded during {stage}.")

    def timeout(self, stage: str, cap: Optional[float] = None) -> float:
        """Seconds left for one upstream call, raising if none remain."""
        self.check(stage)
        remaining = self.remaining()
        return min(remaining, cap) if cap is not None else remaining
