"""Shared HTTP plumbing for upstream source clients."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..errors import NotConfiguredError, RateLimitedError, UpstreamError
from ..models import Event, RateLimitStatus

logger = logging.getLogger(__name__)


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


def truncate(text: str, length: int) -> str:
    """Cut ``text`` to ``length`` characters, marking the cut with '...'."""
    if len(text) > length:
        return text[:length] + "..."
    return text


class SourceClient(ABC):
    """
    Base class for one upstream API.

    Each instance owns its own ``httpx.AsyncClient`` and rate limit counters,
    so clients can be created per test or per process without shared state.
    """

    source: str = ""
    display_name: str = ""
    config_hint: str = ""

    # Rate limit headers, None when the API does not report them
    default_remaining: int = 100
    remaining_header: Optional[str] = None
    used_header: Optional[str] = None
    limit_header: Optional[str] = None
    reset_header: Optional[str] = None
    reset_is_epoch: bool = True

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=headers or {},
            transport=transport,
        )
        self._rate_limit = RateLimitStatus(remaining=self.default_remaining)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def is_configured(self) -> bool:
        """Whether the credentials this source needs are present."""
        return True

    def require_configured(self) -> None:
        if not self.is_configured():
            raise NotConfiguredError(self.source, self.config_hint)

    def get_rate_limit_status(self) -> RateLimitStatus:
        return self._rate_limit.model_copy()

    @abstractmethod
    async def fetch_popular(self, limit: Optional[int] = None) -> List[Event]:
        """Default "what is viral right now" fetch used by the aggregator."""

    @abstractmethod
    async def search(self, query: str, limit: int = 15) -> List[Event]:
        """Free-text search across this source."""

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET a JSON document, mapping failures onto the source error types."""
        query = {k: v for k, v in (params or {}).items() if v is not None}

        try:
            response = await self._client.get(path, params=query)
        except httpx.TimeoutException as e:
            logger.warning(f"{self.source} timeout on {path}")
            raise UpstreamError(self.source, None, f"timeout after {self.timeout}s") from e
        except httpx.HTTPError as e:
            logger.warning(f"{self.source} request error on {path}: {e}")
            raise UpstreamError(self.source, None, str(e)) from e
        except httpx.InvalidURL as e:
            logger.warning(f"{self.source} rejected URL for {path}: {e}")
            raise UpstreamError(self.source, None, f"invalid URL: {e}", retriable=False) from e

        self._update_rate_limit(response.headers)

        if response.status_code == 429:
            logger.warning(f"{self.source} rate limited on {path}")
            raise RateLimitedError(
                self.source,
                reset_at=self._rate_limit.reset_at,
                message=self._rate_limit_message(),
            )

        if not response.is_success:
            message = self._describe_error(response)
            logger.error(f"{self.source} API error {response.status_code}: {message}")
            raise UpstreamError(self.source, response.status_code, message)

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(self.source, response.status_code, "invalid JSON body", retriable=False) from e

    def _update_rate_limit(self, headers: httpx.Headers) -> None:
        status = self._rate_limit

        remaining = _parse_int(headers.get(self.remaining_header)) if self.remaining_header else None
        used = _parse_int(headers.get(self.used_header)) if self.used_header else None
        limit = _parse_int(headers.get(self.limit_header)) if self.limit_header else None
        reset = _parse_int(headers.get(self.reset_header)) if self.reset_header else None

        updates: Dict[str, Any] = {}
        if remaining is not None:
            updates["remaining"] = remaining
        if used is not None:
            updates["used"] = used
        if limit is not None:
            updates["limit"] = limit
        if reset is not None:
            if self.reset_is_epoch:
                updates["reset_at"] = datetime.fromtimestamp(reset, tz=timezone.utc)
            else:
                updates["reset_at"] = datetime.now(timezone.utc) + timedelta(seconds=reset)

        if updates:
            self._rate_limit = status.model_copy(update=updates)

    def _rate_limit_message(self) -> str:
        """Human-readable 429 text; empty means the generic reset countdown."""
        return ""

    def _describe_error(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict):
            for key in ("message", "detail", "error"):
                if body.get(key):
                    return str(body[key])
        return response.text[:200]
