"""Errors raised by the upstream HTTP clients."""

from __future__ import annotations

from typing import Optional


class ExternalApiError(Exception):
    """An upstream service failed or returned an unusable response."""

    def __init__(
        self,
        service: str,
        message: str,
        *,
        status: Optional[int] = None,
        endpoint: Optional[str] = None,
    ) -> None:
        super().__init__(f"{service} API error: {message}")
        self.service = service
        self.status = status
        self.message = message
        self.endpoint = endpoint


class RateLimitError(ExternalApiError):
    """The upstream service answered 429."""

    def __init__(self, service: str, retry_after: int = 60, *, endpoint: Optional[str] = None) -> None:
        super().__init__(service, "rate limit exceeded", status=429, endpoint=endpoint)
        self.retry_after = retry_after
