"""Route group exports."""

from . import health, segments, trips

__all__ = ["health", "segments", "trips"]
