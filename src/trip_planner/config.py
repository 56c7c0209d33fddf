"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="TRIP_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Trip Route Planner API"
    api_prefix: str = "/api"

    mapbox_base_url: str = Field(
        default="https://api.mapbox.com",
        description="Base URL for the Mapbox directions and matrix APIs.",
    )
    mapbox_access_token: Optional[str] = Field(default=None, description="Mapbox access token.")
    mapbox_profile: Literal["cycling", "walking", "driving"] = Field(
        default="cycling",
        description="Mapbox routing profile used for transfers and the cost matrix.",
    )
    strava_base_url: str = Field(
        default="https://www.strava.com/api/v3",
        description="Base URL for the segment metadata service.",
    )
    strava_access_token: Optional[str] = Field(default=None, description="Bearer token for the segment service.")
    segment_url_template: str = Field(
        default="https://www.strava.com/segments/{segment_id}",
        description="Public URL of a segment, formatted with its id.",
    )

    http_timeout_seconds: float = Field(default=15.0, gt=0.0)
    http_max_retries: int = Field(default=2, ge=0)
    http_backoff_seconds: float = Field(default=0.5, ge=0.0)

    matrix_max_waypoints: int = Field(default=25, ge=2)
    max_segments: int = Field(default=10, ge=1)
    max_trip_days: int = Field(default=14, ge=1)
    solver_time_budget_ms: int = Field(default=500, ge=0)
    solver_two_opt_passes: int = Field(default=50, ge=0)
    riding_speed_kmh: float = Field(default=25.0, gt=0.0)
    stitch_parallel_requests: int = Field(default=4, ge=1)
    request_deadline_seconds: float = Field(default=30.0, gt=0.0)

    explore_cache_max_size: int = Field(default=200, ge=1)
    explore_cache_ttl_seconds: float = Field(default=300.0, gt=0.0)
    explore_cache_sweep_seconds: float = Field(default=120.0, gt=0.0)
    upstream_cache_max_size: int = Field(default=1000, ge=1)
    upstream_cache_ttl_seconds: float = Field(default=86400.0, gt=0.0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
