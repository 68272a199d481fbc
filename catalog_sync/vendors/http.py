"""Shared HTTP plumbing for the rate-limited third-party clients."""

import logging
from typing import Any, Callable, Dict, Optional

import requests

from catalog_sync.core.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10
_TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}


class SourceError(RuntimeError):
    """Base class for failures talking to an external source."""


class TransientSourceError(SourceError):
    """Network, quota or 5xx failure that survived every retry."""


class PermanentSourceError(SourceError):
    """Auth or malformed-request failure; never retried."""


class RateLimitedClient:
    """Base client: every attempt goes through the limiter, transient failures retry linearly."""

    source_name = "http"

    def __init__(
        self,
        limiter: RateLimiter,
        session: Optional[requests.Session] = None,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.limiter = limiter
        self.session = session or requests.Session()
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep or limiter.sleep

    def _send(self, url: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        """Issue a GET, classifying failures as transient or permanent."""
        try:
            response = self.session.get(url, params=params, headers=headers, timeout=REQUEST_TIMEOUT)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransientSourceError(f"{self.source_name} request failed: {exc}") from exc

        status = response.status_code
        if status in _TRANSIENT_STATUS_CODES:
            raise TransientSourceError(f"{self.source_name} returned HTTP {status}")
        if status >= 400:
            raise PermanentSourceError(f"{self.source_name} returned HTTP {status}: {response.text[:200]}")
        return response

    def _call(self, operation: Callable[[], Any], description: str) -> Any:
        """Run ``operation`` under the rate limiter with bounded linear backoff."""
        attempt = 0
        while True:
            attempt += 1
            self.limiter.wait()
            try:
                logger.debug("Calling %s (attempt %s): %s", self.source_name, attempt, description)
                return operation()
            except PermanentSourceError:
                logger.error("%s request rejected: %s", self.source_name, description)
                raise
            except TransientSourceError as exc:
                logger.warning(
                    "%s request failed (attempt %s/%s): %s", self.source_name, attempt, self.max_retries + 1, exc
                )
                if attempt > self.max_retries:
                    logger.error("%s request exhausted retries: %s", self.source_name, description)
                    raise
                self._sleep(self.retry_delay * attempt)

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        def operation() -> Dict[str, Any]:
            response = self._send(url, params=params, headers=headers)
            try:
                return response.json()
            except ValueError as exc:
                raise TransientSourceError(f"{self.source_name} returned invalid JSON") from exc

        return self._call(operation, url)

    def get_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        return self._call(lambda: self._send(url, headers=headers).text, url)
