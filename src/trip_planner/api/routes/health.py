"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request, status

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/cache", status_code=status.HTTP_200_OK)
def health_cache(request: Request) -> dict:
    """Statistics of the in-process caches."""
    state = request.app.state
    return {
        "explore": state.explore_cache.stats(),
        "routing": state.routing_cache.stats(),
    }
