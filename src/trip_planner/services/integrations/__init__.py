"""Clients for the upstream segment and routing services."""

from .errors import ExternalApiError, RateLimitError
from .mapbox import MapboxClient, decode_polyline
from .strava import SegmentClient

__all__ = ["ExternalApiError", "RateLimitError", "MapboxClient", "SegmentClient", "decode_polyline"]
