import pytest

from trip_planner.services.planning.elevation import (
    calculate_bidirectional_elevation,
    estimate_from_polyline,
    estimate_heuristic_elevation,
)


def test_measured_deltas_are_summed_by_direction():
    coordinates = [
        (10.0, 45.0, 200.0),
        (10.01, 45.0, 300.0),
        (10.02, 45.0, 260.0),
        (10.03, 45.0, 270.0),
    ]

    result = calculate_bidirectional_elevation(coordinates)

    assert (result.ascent_m, result.descent_m) == (110, 40)
    assert result.method == "measured"


def test_points_without_elevation_are_skipped():
    coordinates = [
        (10.0, 45.0, 100.0),
        (10.01, 45.0),
        (10.02, 45.0, 150.0),
        (10.03, 45.0, 120.0),
    ]

    result = calculate_bidirectional_elevation(coordinates)

    assert (result.ascent_m, result.descent_m) == (0, 30)


def test_fewer_than_two_points_is_zero():
    assert calculate_bidirectional_elevation([]).ascent_m == 0
    result = calculate_bidirectional_elevation([(10.0, 45.0, 500.0)])
    assert (result.ascent_m, result.descent_m) == (0, 0)


def test_missing_elevation_uses_heuristic_split():
    coordinates = [(10.0, 45.0), (11.0, 45.0), (11.0, 46.0)]

    result = calculate_bidirectional_elevation(coordinates)

    assert result.method == "heuristic"
    assert result == estimate_heuristic_elevation(coordinates)
    assert result.ascent_m > result.descent_m > 0
    total = result.ascent_m + result.descent_m
    assert result.ascent_m / total == pytest.approx(0.55, abs=0.01)


def test_straight_short_path_has_little_heuristic_climbing():
    result = estimate_heuristic_elevation([(10.0, 45.0), (10.0001, 45.0)])

    assert (result.ascent_m, result.descent_m) == (0, 0)


def test_polyline_estimate_is_deterministic_and_bounded():
    short = estimate_from_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")
    huge = estimate_from_polyline("a" * 100_000)

    assert short == estimate_from_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")
    assert short.method == "polyline_length"
    assert short.ascent_m >= 0 and short.descent_m >= 0
    assert huge.ascent_m + huge.descent_m == 2000
    assert estimate_from_polyline("").ascent_m == 0
