import math

import pytest

from trip_planner.models.routing import CostMatrix, TransferRoute
from trip_planner.services.events import CollectingEventSink, TransferFallback, TransferRouted
from trip_planner.services.integrations.errors import ExternalApiError
from trip_planner.services.planning.errors import PlanningTimeoutError
from trip_planner.services.planning.models import Deadline, Leg, Ordering
from trip_planner.services.planning.stitcher import stitch_route_geometry

from polyline_helpers import encode_polyline


def _leg(k: int, entry, exit_, length_m: float = 1000.0, elevation_m: float = 10.0, base: int = 0) -> Leg:
    return Leg(
        segment_id=k + 1,
        name=f"Segment {k + 1}",
        forward_direction=True,
        entry=entry,
        exit=exit_,
        length_m=length_m,
        elevation_gain_m=elevation_m,
        entry_index=base + 2 * k,
        exit_index=base + 2 * k + 1,
    )


def _ordering(order) -> Ordering:
    return Ordering(legs=list(order), method="exact", total_distance_m=0.0, total_duration_s=0.0, solving_time_ms=0.0)


def _matrix(size: int, value: float = 2500.0) -> CostMatrix:
    distances = [[0.0 if i == j else value for j in range(size)] for i in range(size)]
    return CostMatrix.from_lists(distances, distances)


class DummyRouting:
    """Routes every transfer through a midpoint; selected pairs fail."""

    def __init__(self, failing=(), elevation: float = 5.0, length_m: float = 1200.0):
        self.failing = set(failing)
        self.elevation = elevation
        self.length_m = length_m
        self.calls = []

    def directions(self, origin, destination, timeout=None):
        self.calls.append((origin, destination))
        if (origin, destination) in self.failing:
            raise ExternalApiError("mapbox", "no route", status=422)
        mid = ((origin[0] + destination[0]) / 2, (origin[1] + destination[1]) / 2)
        points = [(origin[1], origin[0]), (mid[1], mid[0]), (destination[1], destination[0])]
        return TransferRoute(encoded_geometry=encode_polyline(points), length_m=self.length_m, duration_s=240.0)

    def polyline_elevation_gain(self, encoded):
        return self.elevation


LEGS = [
    _leg(0, (10.0, 45.0), (10.01, 45.0)),
    _leg(1, (10.02, 45.0), (10.03, 45.0)),
    _leg(2, (10.04, 45.0), (10.05, 45.0)),
]


def _assert_contiguous(geometry):
    ranges = geometry.leg_ranges
    assert ranges[0][0] == 0
    for (_, end), (start, _) in zip(ranges, ranges[1:]):
        assert end == start
    assert ranges[-1][1] == len(geometry.coordinates)


def test_ranges_are_contiguous_and_cover_all_points():
    geometry = stitch_route_geometry(_ordering([0, 1, 2]), LEGS, _matrix(6), routing_client=DummyRouting())

    _assert_contiguous(geometry)
    # Later legs share their entry with the routed transfer, so they add midpoint, entry and exit.
    assert len(geometry.coordinates) == 2 + 3 + 3
    assert geometry.coordinates[0] == (10.0, 45.0)
    assert geometry.coordinates[-1] == (10.05, 45.0)


def test_cumulative_metrics_add_transfers_and_legs():
    geometry = stitch_route_geometry(_ordering([0, 1, 2]), LEGS, _matrix(6), routing_client=DummyRouting())

    assert geometry.cumulative_distances_m == pytest.approx([0.0, 1000.0, 3200.0, 5400.0])
    assert geometry.cumulative_elevation_gains_m == pytest.approx([0.0, 10.0, 25.0, 40.0])
    for previous, current in zip(geometry.cumulative_distances_m, geometry.cumulative_distances_m[1:]):
        assert current >= previous


def test_failed_transfer_falls_back_to_straight_line():
    sink = CollectingEventSink()
    routing = DummyRouting(failing={(LEGS[0].exit, LEGS[1].entry)})

    geometry = stitch_route_geometry(_ordering([0, 1, 2]), LEGS, _matrix(6, value=2500.0), routing_client=routing, sink=sink)

    _assert_contiguous(geometry)
    start, end = geometry.leg_ranges[1]
    assert geometry.coordinates[start:end] == [LEGS[1].entry, LEGS[1].exit]
    # Fallback pair uses the matrix distance and no climbing; the other pair is routed.
    assert geometry.cumulative_distances_m == pytest.approx([0.0, 1000.0, 4500.0, 6700.0])
    assert geometry.cumulative_elevation_gains_m == pytest.approx([0.0, 10.0, 20.0, 35.0])
    assert len(sink.of_type(TransferFallback)) == 1
    assert len(sink.of_type(TransferRouted)) == 1


def test_non_finite_elevation_is_clamped_to_zero():
    legs = [LEGS[0], _leg(1, (10.02, 45.0), (10.03, 45.0), elevation_m=float("nan"))]

    geometry = stitch_route_geometry(
        _ordering([0, 1]), legs, _matrix(4), routing_client=DummyRouting(elevation=float("nan"))
    )

    assert all(math.isfinite(value) for value in geometry.cumulative_elevation_gains_m)
    assert geometry.cumulative_elevation_gains_m == pytest.approx([0.0, 10.0, 10.0])


def test_trip_start_transfer_belongs_to_first_leg():
    legs = [_leg(k, leg.entry, leg.exit, base=1) for k, leg in enumerate(LEGS[:2])]
    trip_start = (9.99, 45.0)
    routing = DummyRouting()

    geometry = stitch_route_geometry(
        _ordering([0, 1]),
        legs,
        _matrix(5),
        routing_client=routing,
        trip_start=trip_start,
        trip_start_index=0,
    )

    _assert_contiguous(geometry)
    assert geometry.coordinates[0] == trip_start
    assert (trip_start, legs[0].entry) in routing.calls
    assert geometry.cumulative_distances_m[1] == pytest.approx(1200.0 + 1000.0)


def test_reverse_order_routes_between_exit_and_entry():
    routing = DummyRouting()

    stitch_route_geometry(_ordering([2, 0]), LEGS, _matrix(6), routing_client=routing)

    assert routing.calls == [(LEGS[2].exit, LEGS[0].entry)]


def test_slice_day_returns_joined_geometry():
    geometry = stitch_route_geometry(_ordering([0, 1, 2]), LEGS, _matrix(6), routing_client=DummyRouting())

    first = geometry.slice_day([0])
    second = geometry.slice_day([1, 2])

    assert first.coordinates == [LEGS[0].entry, LEGS[0].exit]
    assert second.coordinates[0] == first.coordinates[-1]
    assert second.coordinates[-1] == LEGS[2].exit
    assert first.distance_m + second.distance_m == pytest.approx(geometry.cumulative_distances_m[-1])
    assert second.elevation_gain_m == pytest.approx(30.0)


def test_slice_day_rejects_non_consecutive_legs():
    geometry = stitch_route_geometry(_ordering([0, 1, 2]), LEGS, _matrix(6), routing_client=DummyRouting())

    with pytest.raises(ValueError):
        geometry.slice_day([0, 2])


def test_expired_deadline_aborts_stitching():
    with pytest.raises(PlanningTimeoutError):
        stitch_route_geometry(
            _ordering([0, 1, 2]),
            LEGS,
            _matrix(6),
            routing_client=DummyRouting(),
            deadline=Deadline(0.0),
        )


def test_single_leg_needs_no_transfers():
    routing = DummyRouting()

    geometry = stitch_route_geometry(_ordering([1]), LEGS, _matrix(6), routing_client=routing)

    assert routing.calls == []
    assert geometry.coordinates == [LEGS[1].entry, LEGS[1].exit]
    assert geometry.leg_ranges == [(0, 2)]
