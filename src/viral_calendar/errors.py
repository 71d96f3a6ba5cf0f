"""Exception hierarchy for source clients and storage."""

from datetime import datetime, timezone
from typing import Optional


class ViralCalendarError(Exception):
    """Base class for all errors raised by this package."""


class SourceError(ViralCalendarError):
    """An upstream source could not produce results."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class NotConfiguredError(SourceError):
    """Required credentials for a source are missing."""

    def __init__(self, source: str, hint: str = ""):
        message = "not configured"
        if hint:
            message += f" ({hint})"
        super().__init__(source, message)


class UpstreamError(SourceError):
    """Non-2xx response or transport failure from a source."""

    def __init__(
        self,
        source: str,
        status: Optional[int],
        message: str = "",
        retriable: Optional[bool] = None,
    ):
        self.status = status
        if retriable is None:
            retriable = status is None or status >= 500
        self.retriable = retriable
        label = f"HTTP {status}" if status is not None else "request failed"
        super().__init__(source, f"{label}: {message}" if message else label)


class RateLimitedError(UpstreamError):
    """HTTP 429 from a source."""

    def __init__(self, source: str, reset_at: Optional[datetime] = None, message: str = ""):
        self.reset_at = reset_at
        if not message:
            message = "rate limit exceeded"
            if reset_at is not None:
                seconds = max(0, int((reset_at - datetime.now(timezone.utc)).total_seconds()))
                message += f", resets in {seconds}s"
        super().__init__(source, 429, message, retriable=True)


class StorageError(ViralCalendarError):
    """Remote or local store unreachable, or a write was rejected."""


class ImportInProgressError(ViralCalendarError):
    """A background import is already running."""
