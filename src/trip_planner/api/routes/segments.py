"""Segment exploration endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, Request, status

from ...models.domain import Bounds
from ...schemas.segments import ExploreResponse, SegmentSummaryModel
from ...services.exploration.service import explore_segments
from ...services.integrations.errors import ExternalApiError, RateLimitError
from ...services.integrations.strava import SegmentClient

router = APIRouter(prefix="/segments", tags=["segments"])


@router.get("/explore", response_model=ExploreResponse, status_code=status.HTTP_200_OK)
def explore(
    request: Request,
    sw_lat: float = Query(..., ge=-90, le=90),
    sw_lng: float = Query(..., ge=-180, le=180),
    ne_lat: float = Query(..., ge=-90, le=90),
    ne_lng: float = Query(..., ge=-180, le=180),
) -> ExploreResponse:
    try:
        bounds = Bounds(sw_lat=sw_lat, sw_lng=sw_lng, ne_lat=ne_lat, ne_lng=ne_lng)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    try:
        client = SegmentClient()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    try:
        segments, cached = explore_segments(bounds, client, request.app.state.explore_cache)
    except RateLimitError as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Segment service rate limit exceeded.",
            headers={"Retry-After": str(exc.retry_after)},
        ) from exc
    except ExternalApiError as exc:
        logging.warning(f"Segment exploration failed: {exc}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    return ExploreResponse(
        cached=cached,
        segments=[
            SegmentSummaryModel(
                id=segment.segment_id,
                name=segment.name,
                distance=segment.distance_m,
                average_grade=segment.average_grade,
                elevation_gain=segment.elevation_difference_m,
                lat_start=segment.start[1],
                lon_start=segment.start[0],
                lat_end=segment.end[1],
                lon_end=segment.end[0],
                climb_category=segment.climb_category,
                polyline=segment.encoded_polyline,
                kom_time=segment.kom_time,
            )
            for segment in segments
        ],
    )
