"""Segment exploration read path backed by the viewport cache."""

from __future__ import annotations

import logging

from ...models.domain import Bounds, SegmentSummary
from ..cache.lru import ExpiringLRUCache, bounds_to_key
from ..geospatial import viewport_area_deg2
from ..integrations.strava import SegmentClient

logger = logging.getLogger(__name__)


def explore_segments(bounds: Bounds, client: SegmentClient, cache: ExpiringLRUCache) -> tuple[list[SegmentSummary], bool]:
    """Segments inside ``bounds`` and whether they came from the cache.

    Upstream errors propagate and nothing is cached for a failed lookup.
    """
    key = bounds_to_key(bounds)
    cached = cache.get(key)
    if cached is not None:
        logger.debug(f"Explore cache hit for {key}")
        return cached, True

    logger.info(f"Explore cache miss for {key} (area {viewport_area_deg2(bounds):.4f} deg2)")
    segments = client.explore_segments(bounds)
    cache.set(key, segments)
    return segments, False
