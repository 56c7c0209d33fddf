"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import health, segments, trips
from .config import settings
from .services.cache.lru import ExpiringLRUCache


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.explore_cache.start(settings.explore_cache_sweep_seconds)
    try:
        yield
    finally:
        app.state.explore_cache.stop()


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.explore_cache = ExpiringLRUCache(
        max_size=settings.explore_cache_max_size,
        ttl_seconds=settings.explore_cache_ttl_seconds,
        name="explore",
    )
    app.state.routing_cache = ExpiringLRUCache(
        max_size=settings.upstream_cache_max_size,
        ttl_seconds=settings.upstream_cache_ttl_seconds,
        name="routing",
    )
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(trips.router, prefix=settings.api_prefix)
    app.include_router(segments.router, prefix=settings.api_prefix)
    return app


app = create_app()
