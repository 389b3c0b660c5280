"""
Data model shared by matching, submission, evidence upload and redirect flow.
"""

from __future__ import annotations

import mimetypes
import uuid
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from fundrouter.core.methods import Method
from fundrouter.core.utils import now_ms, parse_amount_range, to_float_safe, to_int_safe


@dataclass(frozen=True)
class Endpoint:
    """A backend receiving account ("channel") for one payment method."""
    id: int
    method: Method
    display_name: str = ""
    account_name: str = ""
    account_number: str = ""
    bank_name: Optional[str] = None
    bank_branch: Optional[str] = None
    icon: str = ""
    remark: str = ""
    sort_weight: Optional[float] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None

    @property
    def weight_key(self) -> float:
        # Endpoints without a weight order after every weighted one.
        return self.sort_weight if self.sort_weight is not None else float("inf")

    def accepts(self, amount: float) -> bool:
        if self.min_amount is not None and amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        return True

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "Endpoint":
        """
        Build from a company-account row.

        Explicit min_amount/max_amount win; otherwise the range is parsed from
        the remark ("100-2000"). Raises ValidationError for unknown types.
        """
        lo = to_float_safe(row.get("min_amount"))
        hi = to_float_safe(row.get("max_amount"))
        if lo is None and hi is None:
            parsed = parse_amount_range(row.get("remark"))
            if parsed:
                lo, hi = parsed
        return cls(
            id=to_int_safe(row.get("id")) or 0,
            method=Method.parse(row.get("type")),
            display_name=str(row.get("type_text") or row.get("type") or ""),
            account_name=str(row.get("account_name") or ""),
            account_number=str(row.get("account_number") or ""),
            bank_name=row.get("bank_name") or None,
            bank_branch=row.get("bank_branch") or None,
            icon=str(row.get("icon") or ""),
            remark=str(row.get("remark") or ""),
            sort_weight=to_float_safe(row.get("sort")),
            min_amount=lo,
            max_amount=hi,
        )


@dataclass
class SelectionSession:
    """One match run for a method. Discarded on screen exit or reset."""
    method: Method
    amount: float
    has_matched_before: bool = False
    candidates: List[Endpoint] = field(default_factory=list)
    created_at_ms: int = field(default_factory=now_ms)


class AttemptOutcome(Enum):
    PENDING = auto()
    SUCCESS = auto()
    RETRYABLE_FAILURE = auto()
    TERMINAL_FAILURE = auto()


@dataclass
class Attempt:
    endpoint: Endpoint
    index: int
    outcome: AttemptOutcome = AttemptOutcome.PENDING
    error: Optional[str] = None
    started_at_ms: int = field(default_factory=now_ms)
    finished_at_ms: int = 0


class OrderStatus(Enum):
    IDLE = auto()
    MATCHING = auto()
    ATTEMPTING = auto()
    AWAITING_EVIDENCE = auto()
    REDIRECTED = auto()
    CONFIRMED = auto()
    FAILED = auto()


@dataclass
class StateTransition:
    """Record of a status change."""
    from_status: OrderStatus
    to_status: OrderStatus
    timestamp_ms: int
    reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OrderReference:
    """Backend order identity plus the locally generated idempotency ref."""
    client_ref: str
    order_id: Optional[str] = None
    order_no: Optional[str] = None

    @property
    def backend_id(self) -> Optional[str]:
        return self.order_id or self.order_no


@dataclass(frozen=True)
class RedirectResult:
    url: str
    reference: OrderReference


@dataclass(frozen=True)
class EvidenceRequired:
    endpoint: Endpoint
    reference: Optional[OrderReference] = None


@dataclass(frozen=True)
class OrderAccepted:
    reference: OrderReference


SubmitOutcome = Union[RedirectResult, EvidenceRequired]


@dataclass
class Order:
    amount: float
    method: Method
    status: OrderStatus = OrderStatus.IDLE
    endpoint: Optional[Endpoint] = None
    reference: Optional[OrderReference] = None
    redirect_url: Optional[str] = None
    evidence: List[str] = field(default_factory=list)
    attempts: List[Attempt] = field(default_factory=list)
    transitions: List[StateTransition] = field(default_factory=list)
    error: Optional[str] = None
    created_at_ms: int = field(default_factory=now_ms)

    @property
    def in_flight(self) -> List[Attempt]:
        return [a for a in self.attempts if a.outcome is AttemptOutcome.PENDING]


class EvidenceStatus(Enum):
    QUEUED = auto()
    UPLOADING = auto()
    UPLOADED = auto()
    FAILED = auto()


@dataclass(frozen=True, eq=False)
class EvidenceFile:
    """A user-selected proof-of-payment file. Identity is the object itself."""
    name: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: str | Path) -> "EvidenceFile":
        p = Path(path)
        ctype, _ = mimetypes.guess_type(p.name)
        return cls(name=p.name, content_type=ctype or "application/octet-stream", content=p.read_bytes())


@dataclass
class EvidenceItem:
    file: EvidenceFile
    preview: Optional[str] = None
    status: EvidenceStatus = EvidenceStatus.QUEUED
    remote_url: Optional[str] = None
    error: Optional[str] = None
    preview_released: bool = False
    item_id: str = field(default_factory=lambda: uuid.uuid4().hex)
