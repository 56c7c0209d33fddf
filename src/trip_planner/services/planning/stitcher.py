"""Continuous trip geometry from ordered legs and routed transfers."""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError, as_completed
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from ...config import settings
from ...models.domain import Coordinate
from ...models.routing import CostMatrix, TransferRoute
from ..events import EventSink, LoggingEventSink, TransferFallback, TransferRouted
from ..geospatial import path_length_m
from ..integrations.errors import ExternalApiError
from ..integrations.mapbox import decode_polyline
from .errors import PlanningTimeoutError
from .models import Deadline, Leg, Ordering, StitchedGeometry

logger = logging.getLogger(__name__)

DUPLICATE_TOLERANCE_DEG = 1e-5


class RoutingClient(Protocol):
    def directions(self, origin: Coordinate, destination: Coordinate, timeout: float | None = None) -> TransferRoute: ...

    def polyline_elevation_gain(self, encoded: str) -> float: ...


@dataclass(slots=True)
class _Transfer:
    position: int
    points: List[Coordinate]
    length_m: float
    elevation_gain_m: float


@dataclass(slots=True, frozen=True)
class _TransferRequest:
    position: int
    origin: Coordinate
    destination: Coordinate
    origin_index: Optional[int]
    destination_index: int
    origin_leg: Optional[int]
    destination_leg: int


def _same_point(a: Coordinate, b: Coordinate) -> bool:
    return abs(a[0] - b[0]) <= DUPLICATE_TOLERANCE_DEG and abs(a[1] - b[1]) <= DUPLICATE_TOLERANCE_DEG


def _finite_or_zero(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def _append(coordinates: List[Coordinate], points: Sequence[Coordinate]) -> None:
    if not points:
        return
    start = 1 if coordinates and _same_point(coordinates[-1], points[0]) else 0
    coordinates.extend(points[start:])


def _fallback_length(request: _TransferRequest, matrix: CostMatrix) -> float:
    if request.origin_index is not None:
        value = matrix.distance(request.origin_index, request.destination_index)
        if math.isfinite(value) and value >= 0:
            return value
    return path_length_m([request.origin, request.destination])


def _fetch_transfer(
    request: _TransferRequest,
    routing_client: RoutingClient,
    matrix: CostMatrix,
    deadline: Optional[Deadline],
    sink: EventSink,
) -> _Transfer:
    timeout = deadline.timeout("transfer routing") if deadline is not None else None
    try:
        route = routing_client.directions(request.origin, request.destination, timeout=timeout)
        points = [(lon, lat) for lat, lon in decode_polyline(route.encoded_geometry)]
        if len(points) < 2:
            raise ValueError("transfer geometry has fewer than two points")
        elevation = _finite_or_zero(float(routing_client.polyline_elevation_gain(route.encoded_geometry)))
        length = _finite_or_zero(route.length_m)
    except (ExternalApiError, ValueError, IndexError) as exc:
        sink.emit(
            TransferFallback(
                origin_leg=request.origin_leg,
                destination_leg=request.destination_leg,
                reason=str(exc),
            )
        )
        return _Transfer(
            position=request.position,
            points=[request.origin, request.destination],
            length_m=_fallback_length(request, matrix),
            elevation_gain_m=0.0,
        )
    sink.emit(
        TransferRouted(
            origin_leg=request.origin_leg,
            destination_leg=request.destination_leg,
            length_m=round(length, 1),
            point_count=len(points),
        )
    )
    return _Transfer(position=request.position, points=points, length_m=length, elevation_gain_m=elevation)


def _transfer_requests(
    ordering: Ordering,
    legs: Sequence[Leg],
    trip_start: Optional[Coordinate],
    trip_start_index: Optional[int],
) -> list[_TransferRequest]:
    requests = []
    for position, leg_index in enumerate(ordering.legs):
        leg = legs[leg_index]
        if position == 0:
            if trip_start is None:
                continue
            requests.append(
                _TransferRequest(
                    position=0,
                    origin=trip_start,
                    destination=leg.entry,
                    origin_index=trip_start_index,
                    destination_index=leg.entry_index,
                    origin_leg=None,
                    destination_leg=leg_index,
                )
            )
            continue
        previous_index = ordering.legs[position - 1]
        previous = legs[previous_index]
        requests.append(
            _TransferRequest(
                position=position,
                origin=previous.exit,
                destination=leg.entry,
                origin_index=previous.exit_index,
                destination_index=leg.entry_index,
                origin_leg=previous_index,
                destination_leg=leg_index,
            )
        )
    return requests


def _fetch_all(
    requests: Sequence[_TransferRequest],
    routing_client: RoutingClient,
    matrix: CostMatrix,
    deadline: Optional[Deadline],
    sink: EventSink,
    max_parallel_requests: int,
) -> dict[int, _Transfer]:
    if not requests:
        return {}
    executor = ThreadPoolExecutor(max_workers=max(1, min(max_parallel_requests, len(requests))))
    transfers: dict[int, _Transfer] = {}
    try:
        futures = [
            executor.submit(_fetch_transfer, request, routing_client, matrix, deadline, sink) for request in requests
        ]
        wait_seconds = deadline.remaining() if deadline is not None else None
        try:
            for future in as_completed(futures, timeout=wait_seconds):
                transfer = future.result()
                transfers[transfer.position] = transfer
        except FutureTimeoutError as exc:
            raise PlanningTimeoutError(
                f"Request deadline exceeded with {len(requests) - len(transfers)} transfer lookups pending."
            ) from exc
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    return transfers


def stitch_route_geometry(
    ordering: Ordering,
    legs: Sequence[Leg],
    matrix: CostMatrix,
    *,
    routing_client: RoutingClient,
    trip_start: Optional[Coordinate] = None,
    trip_start_index: Optional[int] = None,
    deadline: Optional[Deadline] = None,
    sink: Optional[EventSink] = None,
    max_parallel_requests: int | None = None,
) -> StitchedGeometry:
    """Join routed transfers and leg endpoints into one coordinate sequence.

    A failed transfer lookup degrades to a straight line with the matrix
    distance and no climbing for that pair only. Passing the deadline aborts
    the stitch with ``PlanningTimeoutError``.
    """
    sink = sink or LoggingEventSink()
    parallel = max_parallel_requests or settings.stitch_parallel_requests
    requests = _transfer_requests(ordering, legs, trip_start, trip_start_index)
    transfers = _fetch_all(requests, routing_client, matrix, deadline, sink, parallel)

    coordinates: List[Coordinate] = []
    ranges: List[tuple[int, int]] = []
    cumulative_distances = [0.0]
    cumulative_elevations = [0.0]
    for position, leg_index in enumerate(ordering.legs):
        leg = legs[leg_index]
        start = len(coordinates)
        transfer = transfers.get(position)
        transfer_length = 0.0
        transfer_elevation = 0.0
        if transfer is not None:
            _append(coordinates, transfer.points)
            transfer_length = transfer.length_m
            transfer_elevation = transfer.elevation_gain_m
        _append(coordinates, [leg.entry, leg.exit])
        ranges.append((start, len(coordinates)))
        cumulative_distances.append(cumulative_distances[-1] + transfer_length + _finite_or_zero(leg.length_m))
        cumulative_elevations.append(
            cumulative_elevations[-1] + transfer_elevation + _finite_or_zero(leg.elevation_gain_m)
        )

    logger.info(
        f"Stitched {len(ordering.legs)} segments into {len(coordinates)} points "
        f"({cumulative_distances[-1] / 1000.0:.1f} km)"
    )
    return StitchedGeometry(
        order=list(ordering.legs),
        coordinates=coordinates,
        leg_ranges=ranges,
        cumulative_distances_m=cumulative_distances,
        cumulative_elevation_gains_m=cumulative_elevations,
    )
