"""Trip planning orchestration service."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Optional, Sequence

from ...config import settings
from ...models.domain import Coordinate, SegmentMeta
from ...schemas.planning import (
    ConstraintsModel,
    DayRouteModel,
    LineStringModel,
    PlanFailure,
    PlanRequest,
    PlanResponse,
    PlanSuccess,
    SegmentInput,
    SegmentLinkModel,
)
from ..cache.lru import ExpiringLRUCache
from ..events import EventSink, LoggingEventSink, PlanCompleted
from ..geospatial import linestring_geojson
from ..integrations.errors import ExternalApiError
from ..integrations.mapbox import MapboxClient
from ..integrations.strava import SegmentClient
from .elevation import calculate_bidirectional_elevation
from .errors import InternalPlannerError, PlannerError, PlannerErrorCode, PlanningTimeoutError
from .models import DayPartition, Deadline, Leg, StitchedGeometry, TripConstraints
from .partitioner import partition_route
from .solver import solve_leg_order
from .stitcher import stitch_route_geometry

logger = logging.getLogger(__name__)


def _failure(code: PlannerErrorCode, details: str) -> PlanFailure:
    return PlanFailure(error=code, details=details)


def _build_constraints(payload: PlanRequest) -> TripConstraints:
    return TripConstraints(
        start_date=payload.start_date,
        end_date=payload.end_date,
        max_daily_distance_km=payload.max_daily_distance_km,
        max_daily_elevation_m=payload.max_daily_elevation_m,
        max_trip_days=settings.max_trip_days,
    )


def _fetch_segment_metas(
    segment_client: SegmentClient,
    segments: Sequence[SegmentInput],
    deadline: Deadline,
) -> list[SegmentMeta]:
    def fetch(segment: SegmentInput) -> SegmentMeta:
        return segment_client.get_segment_meta(segment.segment_id, timeout=deadline.timeout("segment lookup"))

    executor = ThreadPoolExecutor(max_workers=max(1, min(len(segments), settings.stitch_parallel_requests)))
    try:
        futures = [executor.submit(fetch, segment) for segment in segments]
        try:
            metas = [future.result(timeout=deadline.remaining()) for future in futures]
        except FutureTimeoutError as exc:
            raise PlanningTimeoutError("Request deadline exceeded while loading segment details.") from exc
    finally:
        # Lookups still in flight are abandoned; their results are never read.
        executor.shutdown(wait=False, cancel_futures=True)

    for segment, meta in zip(segments, metas):
        if meta.segment_id != segment.segment_id:
            raise InternalPlannerError(
                f"Segment service returned segment {meta.segment_id} for requested segment {segment.segment_id}."
            )
    return metas


def build_legs(
    segments: Sequence[SegmentInput],
    metas: Sequence[SegmentMeta],
    trip_start: Optional[Coordinate] = None,
) -> tuple[list[Leg], list[Coordinate]]:
    """Legs in input order and the waypoint list used for the cost matrix.

    The waypoint list is the optional trip start followed by each leg's entry
    and exit, so leg ``k`` owns waypoints ``base + 2k`` and ``base + 2k + 1``.
    """
    waypoints: list[Coordinate] = [trip_start] if trip_start is not None else []
    base = len(waypoints)
    legs = []
    for k, (segment, meta) in enumerate(zip(segments, metas)):
        entry, exit_ = (meta.start, meta.end) if segment.forward_direction else (meta.end, meta.start)
        legs.append(
            Leg(
                segment_id=meta.segment_id,
                name=meta.name,
                forward_direction=segment.forward_direction,
                entry=entry,
                exit=exit_,
                length_m=meta.length_m,
                elevation_gain_m=meta.elevation_gain_m,
                entry_index=base + 2 * k,
                exit_index=base + 2 * k + 1,
            )
        )
        waypoints.extend([entry, exit_])
    return legs, waypoints


def _segment_url(segment_id: int) -> str:
    return settings.segment_url_template.format(segment_id=segment_id)


def _build_day(partition: DayPartition, legs: Sequence[Leg], geometry: StitchedGeometry) -> DayRouteModel:
    day_slice = geometry.slice_day(partition.leg_indices)
    elevation = calculate_bidirectional_elevation(day_slice.coordinates)
    return DayRouteModel(
        day_number=partition.day_number,
        distance_km=round(partition.distance_km, 2),
        elevation_gain_m=round(partition.elevation_gain_m, 1),
        ascent_m=elevation.ascent_m,
        descent_m=elevation.descent_m,
        geometry=LineStringModel(**linestring_geojson(day_slice.coordinates)),
        segments=[
            SegmentLinkModel(id=legs[index].segment_id, name=legs[index].name, url=_segment_url(legs[index].segment_id))
            for index in partition.leg_indices
        ],
        duration_minutes=round(partition.duration_minutes, 1),
    )


def plan_trip(
    payload: PlanRequest,
    *,
    segment_client: Optional[SegmentClient] = None,
    routing_client: Optional[MapboxClient] = None,
    routing_cache: Optional[ExpiringLRUCache] = None,
    sink: Optional[EventSink] = None,
) -> PlanResponse:
    """Plan a multi-day trip through the requested segments.

    Clients that are not passed in are built from settings, the routing client
    memoising its responses in ``routing_cache``. Returns ``PlanFailure`` for
    infeasible constraints and upstream failures. Raises
    ``InternalPlannerError`` when an internal invariant is broken.
    """
    started = time.perf_counter()
    sink = sink or LoggingEventSink()
    response = _plan(payload, segment_client, routing_client, routing_cache, sink)
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 1)
    if isinstance(response, PlanSuccess):
        sink.emit(PlanCompleted(ok=True, day_count=len(response.routes), elapsed_ms=elapsed_ms))
    else:
        sink.emit(PlanCompleted(ok=False, error=response.error.value, elapsed_ms=elapsed_ms))
    return response


def _plan(
    payload: PlanRequest,
    segment_client: Optional[SegmentClient],
    routing_client: Optional[MapboxClient],
    routing_cache: Optional[ExpiringLRUCache],
    sink: EventSink,
) -> PlanResponse:
    waypoint_count = 2 * len(payload.segments) + (1 if payload.trip_start is not None else 0)
    if waypoint_count > settings.matrix_max_waypoints:
        return _failure(
            PlannerErrorCode.SEGMENT_TOO_FAR,
            f"Too many waypoints ({waypoint_count}); the routing service accepts at most "
            f"{settings.matrix_max_waypoints}. Remove segments or the trip start.",
        )

    constraints = _build_constraints(payload)
    deadline = Deadline(settings.request_deadline_seconds)

    try:
        segment_client = segment_client or SegmentClient()
        routing_client = routing_client or MapboxClient(cache=routing_cache)
    except ValueError as exc:
        logger.error(f"Upstream client initialization failed: {exc}")
        return _failure(PlannerErrorCode.EXTERNAL_API, str(exc))

    try:
        metas = _fetch_segment_metas(segment_client, payload.segments, deadline)
        legs, waypoints = build_legs(payload.segments, metas, payload.trip_start)
        trip_start_index = 0 if payload.trip_start is not None else None

        try:
            matrix = routing_client.matrix(waypoints, timeout=deadline.timeout("cost matrix"))
            matrix.validate(len(waypoints))
        except (ExternalApiError, ValueError) as exc:
            logger.warning(f"Cost matrix unavailable: {exc}")
            return _failure(PlannerErrorCode.EXTERNAL_API, f"Cost matrix request failed: {exc}")

        ordering = solve_leg_order(legs, matrix, trip_start_index=trip_start_index, sink=sink)
        partitions = partition_route(ordering, legs, matrix, constraints, sink=sink)
        geometry = stitch_route_geometry(
            ordering,
            legs,
            matrix,
            routing_client=routing_client,
            trip_start=payload.trip_start,
            trip_start_index=trip_start_index,
            deadline=deadline,
            sink=sink,
        )
    except ExternalApiError as exc:
        logger.warning(f"Segment lookup failed: {exc}")
        return _failure(PlannerErrorCode.EXTERNAL_API, str(exc))
    except PlannerError as exc:
        logger.info(f"Planning failed with {exc.code.value}: {exc.details}")
        return _failure(exc.code, exc.details)

    seen = [index for partition in partitions for index in partition.leg_indices]
    if seen != list(ordering.legs):
        raise InternalPlannerError("Day partitions do not cover the ordered segments exactly once.")

    routes = [_build_day(partition, legs, geometry) for partition in partitions]
    return PlanSuccess(
        routes=routes,
        total_distance_km=round(sum(route.distance_km for route in routes), 2),
        total_elevation_gain_m=round(sum(route.elevation_gain_m for route in routes), 1),
        total_ascent_m=sum(route.ascent_m for route in routes),
        total_descent_m=sum(route.descent_m for route in routes),
        total_duration_minutes=round(sum(route.duration_minutes for route in routes), 1),
        constraints=ConstraintsModel(
            start_date=constraints.start_date,
            end_date=constraints.end_date,
            max_daily_distance_km=constraints.max_daily_distance_km,
            max_daily_elevation_m=constraints.max_daily_elevation_m,
            max_days=constraints.max_days,
        ),
    )
