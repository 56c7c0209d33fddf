"""HTTP client for the Strava segments API."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import httpx

from ...config import settings
from ...models.domain import Bounds, SegmentMeta, SegmentSummary
from .errors import ExternalApiError, RateLimitError
from .http import JsonApiClient

logger = logging.getLogger(__name__)

CLIMB_CATEGORIES = {1: "4", 2: "3", 3: "2", 4: "1", 5: "HC"}


def format_climb_category(category: Optional[int]) -> Optional[str]:
    """Map Strava's numeric climb category (5 = hors catégorie) to its label."""
    return CLIMB_CATEGORIES.get(category) if category is not None else None


def format_time(seconds: int | float) -> str:
    """Format a duration in seconds as ``m:ss``."""
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


def _lonlat(latlng) -> tuple[float, float]:
    if not latlng or len(latlng) < 2:
        raise ValueError("missing coordinates")
    return (float(latlng[1]), float(latlng[0]))


class SegmentClient(JsonApiClient):
    service_name = "strava"

    def __init__(
        self,
        base_url: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        max_parallel_requests: int = 4,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.access_token = access_token or settings.strava_access_token
        if not self.access_token:
            raise ValueError("Strava access token is not configured.")
        super().__init__(
            base_url or settings.strava_base_url,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            max_retries=max_retries if max_retries is not None else settings.http_max_retries,
            backoff_seconds=backoff_seconds if backoff_seconds is not None else settings.http_backoff_seconds,
            transport=transport,
        )
        self.max_parallel_requests = max_parallel_requests

    def _default_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def get_segment_meta(self, segment_id: int, timeout: float | None = None) -> SegmentMeta:
        """Length, climbing and endpoints of one segment, coordinates as (lon, lat)."""
        path = f"/segments/{segment_id}"
        data = self._get_json(path, timeout=timeout)
        try:
            return SegmentMeta(
                segment_id=int(data["id"]),
                name=str(data.get("name") or f"Segment {segment_id}"),
                length_m=float(data["distance"]),
                elevation_gain_m=float(data.get("elev_difference") or 0.0),
                start=_lonlat(data.get("start_latlng")),
                end=_lonlat(data.get("end_latlng")),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ExternalApiError(self.service_name, f"segment {segment_id} response incomplete: {exc}", endpoint=path) from exc

    def _segment_polyline(self, segment_id: int) -> Optional[str]:
        try:
            detail = self._get_json(f"/segments/{segment_id}")
        except RateLimitError:
            raise
        except ExternalApiError as exc:
            logger.warning(f"Using segment {segment_id} without detailed polyline: {exc}")
            return None
        return (detail.get("map") or {}).get("polyline")

    def explore_segments(self, bounds: Bounds) -> list[SegmentSummary]:
        """Cycling segments inside a viewport, each with its detailed polyline where available."""
        bounds_str = f"{bounds.sw_lat},{bounds.sw_lng},{bounds.ne_lat},{bounds.ne_lng}"
        data = self._get_json("/segments/explore", params={"bounds": bounds_str, "activity_type": "riding"})
        raw_segments = data.get("segments") or []
        logger.info(f"Explore returned {len(raw_segments)} segments for bounds {bounds_str}")

        if raw_segments:
            with ThreadPoolExecutor(max_workers=self.max_parallel_requests) as executor:
                polylines = list(executor.map(lambda item: self._segment_polyline(int(item["id"])), raw_segments))
        else:
            polylines = []

        summaries = []
        for item, polyline in zip(raw_segments, polylines):
            try:
                kom_time = item.get("kom_time")
                summaries.append(
                    SegmentSummary(
                        segment_id=int(item["id"]),
                        name=str(item.get("name") or ""),
                        climb_category=format_climb_category(item.get("climb_category")),
                        distance_m=float(item.get("distance") or 0.0),
                        average_grade=float(item.get("avg_grade") or 0.0),
                        elevation_difference_m=float(item.get("elev_difference") or 0.0),
                        start=_lonlat(item.get("start_latlng")),
                        end=_lonlat(item.get("end_latlng")),
                        encoded_polyline=polyline or item.get("points"),
                        kom_time=format_time(kom_time) if isinstance(kom_time, (int, float)) else kom_time or None,
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(f"Skipping malformed explore entry {item.get('id')!r}: {exc}")
        return summaries
