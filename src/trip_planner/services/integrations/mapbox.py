"""HTTP client for the Mapbox directions and matrix APIs."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import httpx

from ...config import settings
from ...models.domain import Coordinate
from ...models.routing import CostMatrix, TransferRoute
from ..cache.lru import ExpiringLRUCache
from ..planning.elevation import calculate_bidirectional_elevation, estimate_from_polyline
from .errors import ExternalApiError
from .http import JsonApiClient

logger = logging.getLogger(__name__)


class MapboxClient(JsonApiClient):
    service_name = "mapbox"

    def __init__(
        self,
        base_url: str | None = None,
        access_token: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        max_waypoints: int | None = None,
        cache: Optional[ExpiringLRUCache] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.access_token = access_token or settings.mapbox_access_token
        if not self.access_token:
            raise ValueError("Mapbox access token is not configured.")
        super().__init__(
            base_url or settings.mapbox_base_url,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            max_retries=max_retries if max_retries is not None else settings.http_max_retries,
            backoff_seconds=backoff_seconds if backoff_seconds is not None else settings.http_backoff_seconds,
            transport=transport,
        )
        self.profile = profile or settings.mapbox_profile
        self.max_waypoints = max_waypoints or settings.matrix_max_waypoints
        self.cache = cache

    def _cached(self, key: str):
        return self.cache.get(key) if self.cache is not None else None

    def _remember(self, key: str, value) -> None:
        if self.cache is not None:
            self.cache.set(key, value)

    def matrix(self, waypoints: Sequence[Coordinate], timeout: float | None = None) -> CostMatrix:
        """Pairwise cycling distance/duration between ``(lon, lat)`` waypoints."""
        if not waypoints:
            raise ValueError("At least one coordinate is required for the cost matrix.")
        if len(waypoints) > self.max_waypoints:
            raise ValueError(f"At most {self.max_waypoints} coordinates are allowed for the cost matrix.")

        coordinate_str = ";".join(f"{lon},{lat}" for lon, lat in waypoints)
        cache_key = f"matrix:{self.profile}:{coordinate_str}"
        cached = self._cached(cache_key)
        if cached is not None:
            logger.debug(f"Matrix cache hit for {len(waypoints)} waypoints")
            return cached

        path = f"/directions-matrix/v1/mapbox/{self.profile}/{coordinate_str}"
        data = self._get_json(
            path,
            params={"annotations": "distance,duration", "access_token": self.access_token},
            timeout=timeout,
        )
        if data.get("code", "Ok") != "Ok" or "distances" not in data or "durations" not in data:
            raise ExternalApiError(
                self.service_name,
                f"matrix response unusable: {data.get('message') or data.get('code') or 'missing arrays'}",
                endpoint=path,
            )
        try:
            result = CostMatrix.from_lists(data["distances"], data["durations"])
        except ValueError as exc:
            raise ExternalApiError(self.service_name, str(exc), endpoint=path) from exc
        self._remember(cache_key, result)
        logger.info(f"Fetched {result.size}x{result.size} cost matrix")
        return result

    def directions(self, origin: Coordinate, destination: Coordinate, timeout: float | None = None) -> TransferRoute:
        """Routed path from ``origin`` to ``destination``."""
        cache_key = (
            f"directions:{self.profile}:{origin[0]:.6f},{origin[1]:.6f}-{destination[0]:.6f},{destination[1]:.6f}"
        )
        cached = self._cached(cache_key)
        if cached is not None:
            return cached

        path = f"/directions/v5/mapbox/{self.profile}/{origin[0]},{origin[1]};{destination[0]},{destination[1]}"
        data = self._get_json(
            path,
            params={
                "geometries": "polyline",
                "overview": "full",
                "steps": "false",
                "access_token": self.access_token,
            },
            timeout=timeout,
        )
        routes = data.get("routes") or []
        if data.get("code", "Ok") != "Ok" or not routes:
            raise ExternalApiError(
                self.service_name,
                f"no route found: {data.get('message') or data.get('code') or 'empty routes'}",
                endpoint=path,
            )
        best = routes[0]
        result = TransferRoute(
            encoded_geometry=best.get("geometry") or "",
            length_m=float(best.get("distance") or 0.0),
            duration_s=float(best.get("duration") or 0.0),
        )
        self._remember(cache_key, result)
        return result

    def polyline_elevation_gain(self, encoded: str) -> float:
        """Estimated climbing along an encoded path in meters.

        Directions responses carry no elevation samples, so this is an
        estimate from the decoded path shape.
        """
        cache_key = f"elevation:{encoded}"
        cached = self._cached(cache_key)
        if cached is not None:
            return cached
        try:
            points = [(lon, lat) for lat, lon in decode_polyline(encoded)]
        except (IndexError, ValueError):
            logger.warning("Could not decode polyline, using length-based elevation estimate")
            points = []
        if len(points) >= 2:
            gain = float(calculate_bidirectional_elevation(points).ascent_m)
        else:
            gain = float(estimate_from_polyline(encoded).ascent_m)
        self._remember(cache_key, gain)
        return gain


def decode_polyline(polyline: str, precision: int = 5) -> list[tuple[float, float]]:
    """Decode a Google encoded polyline to a list of (lat, lon) coordinates."""
    factor = 10 ** precision
    coordinates = []
    index = 0
    lat = 0
    lon = 0

    while index < len(polyline):
        deltas = []
        for _ in range(2):
            shift = 0
            result = 0
            while True:
                b = ord(polyline[index]) - 63
                index += 1
                result |= (b & 0x1F) << shift
                shift += 5
                if b < 0x20:
                    break
            deltas.append(~(result >> 1) if (result & 1) else (result >> 1))
        lat += deltas[0]
        lon += deltas[1]
        coordinates.append((lat / factor, lon / factor))

    return coordinates
