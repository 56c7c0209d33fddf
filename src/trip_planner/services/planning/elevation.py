"""Ascent and descent estimation for coordinate paths."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Literal, Sequence

from ..geospatial import path_length_m

logger = logging.getLogger(__name__)

HEURISTIC_FACTOR = 0.001
ASCENT_SHARE = 0.55
DESCENT_SHARE = 0.45
POLYLINE_ELEVATION_CAP_M = 2000.0


@dataclass(slots=True, frozen=True)
class ElevationResult:
    ascent_m: int
    descent_m: int
    method: Literal["measured", "heuristic", "polyline_length", "none"]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _elevation(point: Sequence[float]) -> float | None:
    if len(point) < 3 or point[2] is None:
        return None
    value = float(point[2])
    return value if math.isfinite(value) else None


def _split(total: float, method: str) -> ElevationResult:
    total = max(0.0, total)
    return ElevationResult(
        ascent_m=_round_half_up(total * ASCENT_SHARE),
        descent_m=_round_half_up(total * DESCENT_SHARE),
        method=method,
    )


def calculate_bidirectional_elevation(coordinates: Sequence[Sequence[float]]) -> ElevationResult:
    """Sum uphill and downhill deltas along ``(lon, lat[, elevation])`` points.

    Only consecutive pairs where both points carry an elevation contribute.
    When no such pair exists the result falls back to
    :func:`estimate_heuristic_elevation`.
    """
    if len(coordinates) < 2:
        return ElevationResult(ascent_m=0, descent_m=0, method="none")

    ascent = 0.0
    descent = 0.0
    measured_pairs = 0
    for previous, current in zip(coordinates, coordinates[1:]):
        before = _elevation(previous)
        after = _elevation(current)
        if before is None or after is None:
            continue
        measured_pairs += 1
        change = after - before
        if change > 0:
            ascent += change
        elif change < 0:
            descent -= change

    if measured_pairs == 0:
        return estimate_heuristic_elevation(coordinates)

    return ElevationResult(ascent_m=_round_half_up(ascent), descent_m=_round_half_up(descent), method="measured")


def estimate_heuristic_elevation(coordinates: Sequence[Sequence[float]]) -> ElevationResult:
    """Pseudo-elevation from path length and how much the path wanders.

    total = length (m) x sum of per-step coordinate deltas (degrees) x 0.001,
    split 55/45 between ascent and descent.
    """
    if len(coordinates) < 2:
        return ElevationResult(ascent_m=0, descent_m=0, method="none")
    complexity = 0.0
    for previous, current in zip(coordinates, coordinates[1:]):
        complexity += math.hypot(current[0] - previous[0], current[1] - previous[1])
    result = _split(path_length_m(coordinates) * complexity * HEURISTIC_FACTOR, "heuristic")
    logger.debug(f"Heuristic elevation for {len(coordinates)} points: +{result.ascent_m}/-{result.descent_m} m")
    return result


def estimate_from_polyline(encoded: str) -> ElevationResult:
    """Placeholder estimate from the encoded polyline's string length only.

    Deterministic and capped at 2000 m. Not a measurement.
    """
    total = min(POLYLINE_ELEVATION_CAP_M, len(encoded) * HEURISTIC_FACTOR * 50)
    return _split(total, "polyline_length")
