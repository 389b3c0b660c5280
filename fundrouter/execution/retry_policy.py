"""
Retryable/terminal classification of submission failures.

The backend reports upstream channel trouble as free text in the envelope
`msg`, so the default classifier matches substrings. Structured codes can be
listed alongside once the backend exposes them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Tuple

from fundrouter.core.errors import (
    ApiError,
    ChannelError,
    NetworkError,
    RetryableChannelError,
    TerminalChannelError,
)

# Messages the backend returns when the upstream payment provider handed
# back no usable payment link, or blew up while producing one.
DEFAULT_RETRYABLE_PATTERNS: Tuple[str, ...] = (
    "获取支付链接失败",
    "未获取到支付地址",
    "Exception:",
    "Stack trace:",
)


class FailureKind(Enum):
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class RetryClassifier:
    """
    Decides whether a failed submission may fail over to the next candidate.

    Already-classified ChannelErrors keep their class. ApiErrors are retryable
    when their code is listed or their message contains a known pattern.
    NetworkErrors follow network_errors_retryable. Anything else is terminal.
    """
    patterns: Tuple[str, ...] = DEFAULT_RETRYABLE_PATTERNS
    codes: frozenset = field(default_factory=frozenset)
    network_errors_retryable: bool = True

    @classmethod
    def build(
        cls,
        patterns: Optional[Iterable[str]] = None,
        codes: Optional[Iterable[int]] = None,
        network_errors_retryable: bool = True,
    ) -> "RetryClassifier":
        return cls(
            patterns=tuple(p for p in (patterns if patterns is not None else DEFAULT_RETRYABLE_PATTERNS) if p),
            codes=frozenset(int(c) for c in (codes or ())),
            network_errors_retryable=network_errors_retryable,
        )

    def matches_message(self, message: str) -> bool:
        return any(p in message for p in self.patterns)

    def classify(self, exc: BaseException) -> FailureKind:
        if isinstance(exc, RetryableChannelError):
            return FailureKind.RETRYABLE
        if isinstance(exc, TerminalChannelError):
            return FailureKind.TERMINAL
        if isinstance(exc, NetworkError):
            return FailureKind.RETRYABLE if self.network_errors_retryable else FailureKind.TERMINAL
        if isinstance(exc, (ApiError, ChannelError)):
            code = getattr(exc, "code", None)
            if code is not None and code in self.codes:
                return FailureKind.RETRYABLE
            if self.matches_message(str(exc)):
                return FailureKind.RETRYABLE
        return FailureKind.TERMINAL

    def is_retryable(self, exc: BaseException) -> bool:
        return self.classify(exc) is FailureKind.RETRYABLE
