import itertools
import math
import random

import numpy as np
import pytest

from trip_planner.models.routing import CostMatrix
from trip_planner.services.events import CollectingEventSink, SolveCompleted, SolverFallback
from trip_planner.services.planning.errors import PlannerErrorCode, SolverError
from trip_planner.services.planning.models import Leg
from trip_planner.services.planning.solver import route_cost, solve_leg_order


def _legs(count: int, base: int = 0, length_m: float = 1000.0) -> list[Leg]:
    return [
        Leg(
            segment_id=k + 1,
            name=f"Segment {k + 1}",
            forward_direction=True,
            entry=(0.0, 0.0),
            exit=(0.0, 0.0),
            length_m=length_m,
            elevation_gain_m=0.0,
            entry_index=base + 2 * k,
            exit_index=base + 2 * k + 1,
        )
        for k in range(count)
    ]


def _random_matrix(size: int, seed: int) -> CostMatrix:
    rng = random.Random(seed)
    distances = [[0.0 if i == j else rng.uniform(100.0, 20000.0) for j in range(size)] for i in range(size)]
    durations = [[value / 5.0 for value in row] for row in distances]
    return CostMatrix.from_lists(distances, durations)


def _brute_force(legs, matrix, trip_start_index=None) -> float:
    return min(
        route_cost(list(order), legs, matrix, trip_start_index) for order in itertools.permutations(range(len(legs)))
    )


@pytest.mark.parametrize("count", [1, 2, 5, 8, 10])
def test_solver_returns_each_leg_once(count: int):
    legs = _legs(count)
    matrix = _random_matrix(2 * count, seed=count)

    ordering = solve_leg_order(legs, matrix, time_budget_ms=10_000)

    assert sorted(ordering.legs) == list(range(count))
    assert ordering.method == "exact"
    assert math.isclose(ordering.total_distance_m, route_cost(ordering.legs, legs, matrix))


@pytest.mark.parametrize("seed", [1, 2, 3, 4])
def test_exact_solution_matches_brute_force(seed: int):
    count = 6
    legs = _legs(count)
    matrix = _random_matrix(2 * count, seed=seed)

    ordering = solve_leg_order(legs, matrix, time_budget_ms=10_000)

    assert ordering.method == "exact"
    assert ordering.total_distance_m <= _brute_force(legs, matrix) + 1e-6


def test_exact_solution_with_trip_start_matches_brute_force():
    count = 5
    legs = _legs(count, base=1)
    matrix = _random_matrix(2 * count + 1, seed=42)

    ordering = solve_leg_order(legs, matrix, trip_start_index=0, time_budget_ms=10_000)

    assert ordering.total_distance_m <= _brute_force(legs, matrix, trip_start_index=0) + 1e-6
    expected_start = matrix.distance(0, legs[ordering.legs[0]].entry_index)
    without_start = route_cost(ordering.legs, legs, matrix)
    assert math.isclose(ordering.total_distance_m, without_start + expected_start)


def test_solver_follows_chain_of_short_transfers():
    # Leg k's exit is next to leg (k + 1)'s entry on a line; every other transfer is long.
    count = 4
    positions = []
    for k in range(count):
        positions.extend([k * 10.0, k * 10.0 + 5.0])
    distances = [[abs(a - b) * 1000.0 for b in positions] for a in positions]
    matrix = CostMatrix.from_lists(distances, distances)
    legs = _legs(count)

    ordering = solve_leg_order(legs, matrix, time_budget_ms=10_000)

    assert ordering.legs == [0, 1, 2, 3]
    assert ordering.total_distance_m == pytest.approx(count * 1000.0 + 3 * 5000.0)


def test_zero_budget_falls_back_to_heuristic():
    sink = CollectingEventSink()
    legs = _legs(7)
    matrix = _random_matrix(14, seed=9)

    ordering = solve_leg_order(legs, matrix, time_budget_ms=0, sink=sink)

    assert ordering.method == "heuristic"
    assert sorted(ordering.legs) == list(range(7))
    assert ordering.legs[0] == 0
    assert sink.of_type(SolverFallback)
    assert sink.of_type(SolveCompleted)[0].method == "heuristic"


def test_large_input_uses_heuristic():
    legs = _legs(13)
    matrix = _random_matrix(26, seed=3)

    ordering = solve_leg_order(legs, matrix, max_waypoints=30, time_budget_ms=2_000)

    assert ordering.method == "heuristic"
    assert sorted(ordering.legs) == list(range(13))


def test_heuristic_starts_nearest_to_trip_start():
    legs = _legs(3, base=1)
    distances = np.full((7, 7), 5000.0)
    np.fill_diagonal(distances, 0.0)
    distances[0, legs[2].entry_index] = 10.0
    matrix = CostMatrix(distances=distances, durations=distances / 5.0)

    ordering = solve_leg_order(legs, matrix, trip_start_index=0, time_budget_ms=0)

    assert ordering.legs[0] == 2


def test_empty_leg_set_is_rejected():
    matrix = _random_matrix(2, seed=1)
    with pytest.raises(SolverError) as excinfo:
        solve_leg_order([], matrix)
    assert excinfo.value.code == PlannerErrorCode.SEGMENT_TOO_FAR


def test_too_many_waypoints_is_rejected():
    legs = _legs(2, base=1)
    matrix = _random_matrix(5, seed=1)
    with pytest.raises(SolverError):
        solve_leg_order(legs, matrix, trip_start_index=0, max_waypoints=4)


@pytest.mark.parametrize("bad_value", [float("nan"), float("inf"), -1.0])
def test_invalid_matrix_cell_is_rejected(bad_value: float):
    legs = _legs(2)
    matrix = _random_matrix(4, seed=5)
    matrix.distances[legs[0].exit_index, legs[1].entry_index] = bad_value
    with pytest.raises(SolverError):
        solve_leg_order(legs, matrix)


def test_matrix_smaller_than_waypoints_is_rejected():
    legs = _legs(3)
    matrix = _random_matrix(4, seed=5)
    with pytest.raises(SolverError):
        solve_leg_order(legs, matrix)
