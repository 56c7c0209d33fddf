"""Visiting order for fixed-direction legs.

The problem is a path TSP over legs with fixed entry and exit points: the cost
of a permutation is the optional transfer from the trip start, plus every leg's
own length, plus the transfers from each leg's exit to the next leg's entry.
Up to ``EXACT_LEG_LIMIT`` legs are solved exactly with a bitmask dynamic
program; larger inputs, or a program that overruns its time budget, fall back
to nearest neighbour followed by 2-opt passes over leg order.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable, Optional, Sequence

from ...config import settings
from ...models.routing import CostMatrix
from ..events import EventSink, LoggingEventSink, SolveCompleted, SolverFallback
from .errors import SolverError
from .models import Leg, Ordering

logger = logging.getLogger(__name__)

EXACT_LEG_LIMIT = 12
IMPROVEMENT_EPSILON = 1e-9


class _BudgetExceeded(Exception):
    pass


def _required_cell(values, origin: int, destination: int, label: str) -> float:
    size = values.shape[0]
    if not (0 <= origin < size and 0 <= destination < size):
        raise SolverError(f"Matrix cell {label}[{origin}][{destination}] is out of range for size {size}.")
    value = float(values[origin, destination])
    if not math.isfinite(value) or value < 0:
        raise SolverError(f"Matrix cell {label}[{origin}][{destination}] is not a valid cost ({value}).")
    return value


def _validate(
    legs: Sequence[Leg],
    matrix: CostMatrix,
    trip_start_index: Optional[int],
    max_waypoints: int,
) -> None:
    if not legs:
        raise SolverError("No segments to order.")
    waypoint_count = 2 * len(legs) + (1 if trip_start_index is not None else 0)
    if waypoint_count > max_waypoints:
        raise SolverError(f"{waypoint_count} waypoints exceed the matrix limit of {max_waypoints}.")
    if matrix.distances.ndim != 2 or matrix.distances.shape != matrix.durations.shape:
        raise SolverError("Distance and duration matrices must be two-dimensional and of equal shape.")

    for leg in legs:
        _required_cell(matrix.durations, leg.entry_index, leg.exit_index, "durations")
        if not math.isfinite(leg.length_m) or leg.length_m < 0:
            raise SolverError(f"Segment {leg.segment_id} has an invalid length ({leg.length_m}).")
        for other in legs:
            if other is leg:
                continue
            _required_cell(matrix.distances, leg.exit_index, other.entry_index, "distances")
            _required_cell(matrix.durations, leg.exit_index, other.entry_index, "durations")
    if trip_start_index is not None:
        for leg in legs:
            _required_cell(matrix.distances, trip_start_index, leg.entry_index, "distances")
            _required_cell(matrix.durations, trip_start_index, leg.entry_index, "durations")


def route_cost(
    order: Sequence[int],
    legs: Sequence[Leg],
    matrix: CostMatrix,
    trip_start_index: Optional[int] = None,
) -> float:
    """Total distance in meters of visiting ``legs`` in ``order``."""
    if not order:
        return 0.0
    total = sum(legs[index].length_m for index in order)
    if trip_start_index is not None:
        total += matrix.distance(trip_start_index, legs[order[0]].entry_index)
    for previous, current in zip(order, order[1:]):
        total += matrix.distance(legs[previous].exit_index, legs[current].entry_index)
    return total


def route_duration(
    order: Sequence[int],
    legs: Sequence[Leg],
    matrix: CostMatrix,
    trip_start_index: Optional[int] = None,
) -> float:
    if not order:
        return 0.0
    total = sum(matrix.duration(legs[index].entry_index, legs[index].exit_index) for index in order)
    if trip_start_index is not None:
        total += matrix.duration(trip_start_index, legs[order[0]].entry_index)
    for previous, current in zip(order, order[1:]):
        total += matrix.duration(legs[previous].exit_index, legs[current].entry_index)
    return total


def _transfer_table(legs: Sequence[Leg], matrix: CostMatrix) -> list[list[float]]:
    return [[matrix.distance(a.exit_index, b.entry_index) for b in legs] for a in legs]


def _start_costs(legs: Sequence[Leg], matrix: CostMatrix, trip_start_index: Optional[int]) -> list[float]:
    if trip_start_index is None:
        return [0.0] * len(legs)
    return [matrix.distance(trip_start_index, leg.entry_index) for leg in legs]


def _solve_exact(
    transfers: list[list[float]],
    start_costs: list[float],
    deadline: float,
    clock: Callable[[], float],
) -> list[int]:
    n = len(start_costs)
    full = (1 << n) - 1
    inf = math.inf
    cost = [[inf] * n for _ in range(1 << n)]
    parent = [[-1] * n for _ in range(1 << n)]
    for j in range(n):
        cost[1 << j][j] = start_costs[j]

    for mask in range(1, full + 1):
        if clock() >= deadline:
            raise _BudgetExceeded
        row = cost[mask]
        for last in range(n):
            base = row[last]
            if base == inf:
                continue
            out = transfers[last]
            for nxt in range(n):
                bit = 1 << nxt
                if mask & bit:
                    continue
                candidate = base + out[nxt]
                target = mask | bit
                if candidate < cost[target][nxt]:
                    cost[target][nxt] = candidate
                    parent[target][nxt] = last

    final_row = cost[full]
    last = min(range(n), key=lambda j: (final_row[j], j))
    order = []
    mask = full
    while last != -1:
        order.append(last)
        previous = parent[mask][last]
        mask ^= 1 << last
        last = previous
    order.reverse()
    return order


def _nearest_neighbour(transfers: list[list[float]], start_costs: list[float], has_trip_start: bool) -> list[int]:
    n = len(start_costs)
    if has_trip_start:
        current = min(range(n), key=lambda j: (start_costs[j], j))
    else:
        current = 0
    order = [current]
    remaining = set(range(n)) - {current}
    while remaining:
        current = min(remaining, key=lambda j: (transfers[current][j], j))
        order.append(current)
        remaining.remove(current)
    return order


def _path_cost(order: Sequence[int], transfers: list[list[float]], start_costs: list[float]) -> float:
    total = start_costs[order[0]]
    for previous, current in zip(order, order[1:]):
        total += transfers[previous][current]
    return total


def _two_opt(
    order: list[int],
    transfers: list[list[float]],
    start_costs: list[float],
    max_passes: int,
    deadline: float,
    clock: Callable[[], float],
) -> list[int]:
    """Reverse runs of legs while that shortens the path; legs keep their direction."""
    best = list(order)
    best_cost = _path_cost(best, transfers, start_costs)
    n = len(best)
    for _ in range(max_passes):
        improved = False
        for i in range(n - 1):
            for j in range(i + 1, n):
                if clock() >= deadline:
                    return best
                candidate = best[:i] + best[i : j + 1][::-1] + best[j + 1 :]
                candidate_cost = _path_cost(candidate, transfers, start_costs)
                if candidate_cost < best_cost - IMPROVEMENT_EPSILON:
                    best, best_cost = candidate, candidate_cost
                    improved = True
        if not improved:
            break
    return best


def solve_leg_order(
    legs: Sequence[Leg],
    matrix: CostMatrix,
    *,
    trip_start_index: Optional[int] = None,
    time_budget_ms: float | None = None,
    two_opt_passes: int | None = None,
    max_waypoints: int | None = None,
    sink: Optional[EventSink] = None,
    clock: Callable[[], float] = time.perf_counter,
) -> Ordering:
    """Order ``legs`` to minimise total distance within a wall-clock budget.

    Raises ``SolverError`` for an empty leg set, too many waypoints, or a
    required matrix cell that is missing, negative or not finite.
    """
    sink = sink or LoggingEventSink()
    budget_ms = time_budget_ms if time_budget_ms is not None else settings.solver_time_budget_ms
    passes = two_opt_passes if two_opt_passes is not None else settings.solver_two_opt_passes
    _validate(legs, matrix, trip_start_index, max_waypoints or settings.matrix_max_waypoints)

    started = clock()
    deadline = started + budget_ms / 1000.0
    transfers = _transfer_table(legs, matrix)
    start_costs = _start_costs(legs, matrix, trip_start_index)

    method = "exact"
    order: list[int] | None = None
    if len(legs) <= EXACT_LEG_LIMIT:
        try:
            order = _solve_exact(transfers, start_costs, deadline, clock)
        except _BudgetExceeded:
            elapsed_ms = (clock() - started) * 1000.0
            sink.emit(SolverFallback(leg_count=len(legs), elapsed_ms=round(elapsed_ms, 2), budget_ms=budget_ms))
    if order is None:
        method = "heuristic"
        order = _nearest_neighbour(transfers, start_costs, trip_start_index is not None)
        order = _two_opt(order, transfers, start_costs, passes, deadline, clock)

    solving_time_ms = (clock() - started) * 1000.0
    ordering = Ordering(
        legs=order,
        method=method,
        total_distance_m=route_cost(order, legs, matrix, trip_start_index),
        total_duration_s=route_duration(order, legs, matrix, trip_start_index),
        solving_time_ms=round(solving_time_ms, 3),
    )
    sink.emit(
        SolveCompleted(
            leg_count=len(legs),
            method=method,
            total_distance_m=round(ordering.total_distance_m, 1),
            solving_time_ms=ordering.solving_time_ms,
        )
    )
    return ordering
