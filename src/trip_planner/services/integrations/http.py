"""Shared request loop for the upstream JSON APIs."""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Optional

import httpx

from .errors import ExternalApiError, RateLimitError

logger = logging.getLogger(__name__)


class JsonApiClient:
    """Base class for clients that GET JSON documents with retry and backoff.

    Timeouts, network errors and 5xx responses are retried with backoff. A 429
    is raised immediately as ``RateLimitError`` and any other non-success
    status as ``ExternalApiError``. A ``timeout`` passed to ``_get_json`` is
    the budget for the whole call, retries and backoff included.
    """

    service_name = "upstream"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float,
        max_retries: int,
        backoff_seconds: float,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        # One client per call keeps the clients safe to share across worker threads.
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
            limits=httpx.Limits(max_connections=1, max_keepalive_connections=0),
            transport=self._transport,
        )

    def _default_headers(self) -> dict[str, str]:
        return {}

    def _attempt_timeout(self, expires_at: Optional[float], path: str) -> httpx.Timeout:
        effective = self.timeout
        if expires_at is not None:
            remaining = expires_at - time.monotonic()
            if remaining <= 0:
                raise ExternalApiError(self.service_name, "request deadline exceeded", endpoint=path)
            effective = min(effective, remaining)
        return httpx.Timeout(effective, connect=min(effective, 10.0))

    def _wait_before_retry(self, wait_time: float, expires_at: Optional[float]) -> bool:
        """Sleep before the next attempt, or return False when the budget cannot cover it."""
        if expires_at is not None and time.monotonic() + wait_time >= expires_at:
            return False
        time.sleep(wait_time)
        return True

    def _get_json(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        expires_at = time.monotonic() + timeout if timeout is not None else None
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(
                        url,
                        params=params,
                        headers=self._default_headers(),
                        timeout=self._attempt_timeout(expires_at, path),
                    )
                    if response.status_code == 429:
                        retry_after = _parse_retry_after(response.headers.get("Retry-After"))
                        logger.warning(f"{self.service_name} rate limited on {path}, retry after {retry_after}s")
                        raise RateLimitError(self.service_name, retry_after, endpoint=path)
                    response.raise_for_status()
                    return response.json()
                except httpx.HTTPStatusError as exc:
                    status_code = exc.response.status_code
                    attempt += 1
                    if (
                        status_code < 500
                        or attempt > self.max_retries
                        or not self._wait_before_retry(self.backoff_seconds * attempt, expires_at)
                    ):
                        logger.warning(f"{self.service_name} request {path} failed with HTTP {status_code}")
                        raise ExternalApiError(
                            self.service_name,
                            f"HTTP {status_code}",
                            status=status_code,
                            endpoint=path,
                        ) from exc
                except httpx.TimeoutException as exc:
                    attempt += 1
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    if attempt > self.max_retries or not self._wait_before_retry(wait_time, expires_at):
                        logger.warning(f"{self.service_name} request {path} timed out after {attempt} attempts")
                        raise ExternalApiError(self.service_name, "request timed out", endpoint=path) from exc
                    logger.debug(
                        f"{self.service_name} timeout, retried after {wait_time:.1f}s (attempt {attempt}/{self.max_retries})"
                    )
                except httpx.TransportError as exc:
                    attempt += 1
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    if attempt > self.max_retries or not self._wait_before_retry(wait_time, expires_at):
                        raise ExternalApiError(
                            self.service_name,
                            f"failed to connect to {self.base_url}: {exc}",
                            endpoint=path,
                        ) from exc
                    logger.debug(
                        f"{self.service_name} network error, retried after {wait_time:.1f}s "
                        f"(attempt {attempt}/{self.max_retries}): {exc}"
                    )
                except ValueError as exc:
                    raise ExternalApiError(self.service_name, "response is not valid JSON", endpoint=path) from exc
        finally:
            client.close()


def _parse_retry_after(value: Optional[str]) -> int:
    if not value:
        return 60
    try:
        return max(0, int(value))
    except ValueError:
        return 60
