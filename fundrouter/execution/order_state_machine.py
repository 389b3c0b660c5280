"""
Order State Machine - explicit recharge order lifecycle.

Provides a formal state machine for an Order with:
- Explicit states: IDLE, MATCHING, ATTEMPTING, AWAITING_EVIDENCE, REDIRECTED, CONFIRMED, FAILED
- Valid state transitions checked against a table
- Audit trail of state changes on the order itself
- Invalid transitions blocked and logged instead of applied

State Diagram:

    IDLE ──> MATCHING ──┬──> ATTEMPTING ──┬──> REDIRECTED ──> CONFIRMED
                        │      │  ▲       │        │ ▲
                        │      └──┘       │        └─┘ (url refresh)
                        │   (next cand.)  │
                        ├─────────────────┴──> AWAITING_EVIDENCE ──> CONFIRMED
                        └──> FAILED

    Every non-idle state may reset to IDLE (terminal failure, cancel, leave).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from fundrouter.core.json_utils import dumps
from fundrouter.core.models import Order, OrderStatus, StateTransition
from fundrouter.core.utils import now_ms

log = logging.getLogger("fundrouter")


VALID_TRANSITIONS: Dict[OrderStatus, List[OrderStatus]] = {
    OrderStatus.IDLE: [
        OrderStatus.MATCHING,
    ],
    OrderStatus.MATCHING: [
        OrderStatus.ATTEMPTING,
        OrderStatus.AWAITING_EVIDENCE,  # manual-evidence method, no attempt
        OrderStatus.FAILED,             # no eligible channel
        OrderStatus.IDLE,               # cancelled
    ],
    OrderStatus.ATTEMPTING: [
        OrderStatus.ATTEMPTING,         # failover to next candidate
        OrderStatus.REDIRECTED,
        OrderStatus.AWAITING_EVIDENCE,  # upstream gave no url, manual fallback
        OrderStatus.FAILED,
        OrderStatus.IDLE,
    ],
    OrderStatus.AWAITING_EVIDENCE: [
        OrderStatus.CONFIRMED,
        OrderStatus.IDLE,
    ],
    OrderStatus.REDIRECTED: [
        OrderStatus.REDIRECTED,         # url refresh
        OrderStatus.CONFIRMED,
        OrderStatus.IDLE,               # cancelled or timed out
    ],
    OrderStatus.CONFIRMED: [
        OrderStatus.IDLE,
    ],
    OrderStatus.FAILED: [
        OrderStatus.IDLE,
    ],
}

TERMINAL_STATUSES = frozenset({OrderStatus.CONFIRMED, OrderStatus.FAILED})


class OrderStateMachine:
    """
    Applies validated status changes to Order objects.

    Unlike a registry the machine holds no orders; the Order carries its own
    status and transition history. Statistics are aggregated across every
    order the machine has touched.
    """

    def __init__(
        self,
        log_event: Optional[Callable[..., None]] = None,
        on_state_change: Optional[Callable[[Order, OrderStatus, OrderStatus], None]] = None,
    ) -> None:
        """
        Args:
            log_event: Callback for structured logging
            on_state_change: Callback when any order changes status
        """
        self._log_event = log_event or self._default_log
        self._on_state_change = on_state_change

        self._stats = {
            "total_matches": 0,
            "total_redirected": 0,
            "total_confirmed": 0,
            "total_failed": 0,
            "total_reset": 0,
            "invalid_transitions_blocked": 0,
        }

    def _default_log(self, event: str, **kwargs) -> None:
        log.info(dumps({"event": event, **kwargs}))

    def is_valid_transition(self, from_status: OrderStatus, to_status: OrderStatus) -> bool:
        return to_status in VALID_TRANSITIONS.get(from_status, [])

    def transition(
        self,
        order: Order,
        to_status: OrderStatus,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Move the order to a new status.

        Returns:
            True if applied, False if the transition is not allowed
        """
        from_status = order.status
        if not self.is_valid_transition(from_status, to_status):
            self._stats["invalid_transitions_blocked"] += 1
            self._log_event(
                "order_invalid_transition",
                method=order.method.value,
                from_status=from_status.name,
                to_status=to_status.name,
                reason=reason,
            )
            return False

        order.transitions.append(
            StateTransition(
                from_status=from_status,
                to_status=to_status,
                timestamp_ms=now_ms(),
                reason=reason,
                metadata=metadata or {},
            )
        )
        order.status = to_status

        if to_status is OrderStatus.MATCHING:
            self._stats["total_matches"] += 1
        elif to_status is OrderStatus.REDIRECTED and from_status is not OrderStatus.REDIRECTED:
            self._stats["total_redirected"] += 1
        elif to_status is OrderStatus.CONFIRMED:
            self._stats["total_confirmed"] += 1
        elif to_status is OrderStatus.FAILED:
            self._stats["total_failed"] += 1
        elif to_status is OrderStatus.IDLE:
            self._stats["total_reset"] += 1

        # Per-attempt hops are noisy; the orchestrator logs those itself.
        if from_status is OrderStatus.ATTEMPTING and to_status is OrderStatus.ATTEMPTING:
            log.debug("order_next_attempt method=%s reason=%s", order.method.value, reason)
        else:
            self._log_event(
                "order_transition",
                method=order.method.value,
                amount=order.amount,
                from_status=from_status.name,
                to_status=to_status.name,
                reason=reason,
            )

        if self._on_state_change:
            try:
                self._on_state_change(order, from_status, to_status)
            except Exception as e:
                self._log_event("order_state_callback_error", error=str(e))

        return True

    def reset(self, order: Order, reason: str = "reset") -> bool:
        """Return the order to IDLE. A no-op when it is already idle."""
        if order.status is OrderStatus.IDLE:
            return False
        return self.transition(order, OrderStatus.IDLE, reason=reason)

    def is_terminal(self, order: Order) -> bool:
        return order.status in TERMINAL_STATUSES

    def get_stats(self) -> Dict[str, Any]:
        return dict(self._stats)
