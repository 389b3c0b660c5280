"""
Exception taxonomy for channel matching, submission and evidence upload.

Validation errors are raised synchronously before any state change.
Channel and network errors raised during a match are absorbed by the
failover orchestrator and only the final outcome is surfaced through
MatchResult. Upload errors stay scoped to a single evidence item.
"""

from __future__ import annotations

from typing import Optional


class FundRouterError(Exception):
    """Base class for all fundrouter errors."""


class ValidationError(FundRouterError):
    """Bad amount, method or missing selection. Never retried."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class ApiError(FundRouterError):
    """Backend answered with a non-success envelope ({code != 1, msg})."""

    def __init__(self, message: str, code: Optional[int] = None, payload: Optional[dict] = None) -> None:
        super().__init__(message)
        self.code = code
        self.payload = payload or {}

    @property
    def msg(self) -> str:
        return str(self)


class NetworkError(FundRouterError):
    """Connectivity failure after the HTTP client exhausted its own retries."""


class ChannelError(FundRouterError):
    """A submission against a specific endpoint failed."""

    def __init__(self, message: str, endpoint_id: Optional[int] = None, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.endpoint_id = endpoint_id
        self.code = code


class RetryableChannelError(ChannelError):
    """Transient channel failure; drives failover to the next candidate."""


class TerminalChannelError(ChannelError):
    """Non-transient channel failure; aborts the match immediately."""


class NoEligibleChannelError(TerminalChannelError):
    """No endpoint matches the requested method and amount."""


class ChannelsExhaustedError(ChannelError):
    """Every allowed candidate failed retryably."""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class UploadError(FundRouterError):
    """Upload of a single evidence item failed."""

    def __init__(self, message: str, item_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.item_id = item_id


class FlowClosedError(FundRouterError):
    """Operation attempted on a redirect flow that already reached a terminal state."""
