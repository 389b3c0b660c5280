"""
Core package.

Errors, payment-method policies, the shared data model and small helpers.
"""

from fundrouter.core.errors import (
    FundRouterError,
    ValidationError,
    ApiError,
    NetworkError,
    ChannelError,
    RetryableChannelError,
    TerminalChannelError,
    NoEligibleChannelError,
    ChannelsExhaustedError,
    UploadError,
    FlowClosedError,
)
from fundrouter.core.methods import Method, MethodPolicy, MethodRegistry, DEFAULT_POLICIES
from fundrouter.core.models import (
    Endpoint,
    SelectionSession,
    Attempt,
    AttemptOutcome,
    Order,
    OrderStatus,
    OrderReference,
    RedirectResult,
    EvidenceRequired,
    OrderAccepted,
    EvidenceFile,
    EvidenceItem,
    EvidenceStatus,
)

__all__ = [
    "FundRouterError",
    "ValidationError",
    "ApiError",
    "NetworkError",
    "ChannelError",
    "RetryableChannelError",
    "TerminalChannelError",
    "NoEligibleChannelError",
    "ChannelsExhaustedError",
    "UploadError",
    "FlowClosedError",
    "Method",
    "MethodPolicy",
    "MethodRegistry",
    "DEFAULT_POLICIES",
    "Endpoint",
    "SelectionSession",
    "Attempt",
    "AttemptOutcome",
    "Order",
    "OrderStatus",
    "OrderReference",
    "RedirectResult",
    "EvidenceRequired",
    "OrderAccepted",
    "EvidenceFile",
    "EvidenceItem",
    "EvidenceStatus",
]
