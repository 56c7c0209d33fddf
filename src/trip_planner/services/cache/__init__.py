"""In-process caches."""

from .lru import ExpiringLRUCache, bounds_to_key

__all__ = ["ExpiringLRUCache", "bounds_to_key"]
