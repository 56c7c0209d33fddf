"""Routing primitives returned by the routing service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass(slots=True)
class CostMatrix:
    """Pairwise travel distance (m) and duration (s) indexed by waypoint position.

    Row is the origin, column the destination; values may be asymmetric.
    Unroutable cells are stored as NaN and rejected when a caller needs them.
    """

    distances: np.ndarray
    durations: np.ndarray

    @classmethod
    def from_lists(
        cls,
        distances: Sequence[Sequence[float | None]],
        durations: Sequence[Sequence[float | None]],
    ) -> "CostMatrix":
        try:
            distance_array = np.array(distances, dtype=float)
            duration_array = np.array(durations, dtype=float)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Cost matrix is not numeric: {exc}") from exc
        return cls(distances=distance_array, durations=duration_array)

    @property
    def size(self) -> int:
        return int(self.distances.shape[0]) if self.distances.ndim == 2 else 0

    def validate(self, waypoint_count: int) -> None:
        """Raise ValueError unless both arrays are ``waypoint_count`` square."""
        expected = (waypoint_count, waypoint_count)
        if self.distances.shape != expected or self.durations.shape != expected:
            raise ValueError(
                f"Cost matrix shape mismatch: distances={self.distances.shape}, "
                f"durations={self.durations.shape}, expected {expected}"
            )

    def distance(self, origin: int, destination: int) -> float:
        return float(self.distances[origin, destination])

    def duration(self, origin: int, destination: int) -> float:
        return float(self.durations[origin, destination])


@dataclass(slots=True, frozen=True)
class TransferRoute:
    """Routed path between two points, geometry as a precision-5 encoded polyline."""

    encoded_geometry: str
    length_m: float
    duration_s: float
