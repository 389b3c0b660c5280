"""
FailoverOrchestrator: bounded sequential failover across matched endpoints.

Drives CandidatePool and OrderSubmissionGateway through the order state
machine:

    Idle -> Matching -> Attempting(0) -> Attempting(1) -> ... -> Redirected
                                                          or AwaitingEvidence
                                                          or Failed -> Idle

Attempts are strictly sequential with a fixed delay between them. At most
min(len(candidates), max_retries) attempts are made. Once a match has
started, errors are returned in MatchResult rather than raised; only
request validation raises, and it does so before any state change.

Usage:
    orchestrator = FailoverOrchestrator(pool, gateway, state_machine, classifier)
    result = await orchestrator.run(endpoints, "wechat", 500, cancel=cancel_event)
    if result.status is OrderStatus.REDIRECTED:
        flow.open(result.outcome.url)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence, TYPE_CHECKING

from fundrouter.core.errors import ChannelsExhaustedError, NoEligibleChannelError
from fundrouter.core.json_utils import dumps
from fundrouter.core.methods import Method
from fundrouter.core.models import (
    Attempt,
    AttemptOutcome,
    Endpoint,
    EvidenceRequired,
    Order,
    OrderStatus,
    RedirectResult,
    SubmitOutcome,
)
from fundrouter.core.utils import now_ms
from fundrouter.execution.retry_policy import FailureKind, RetryClassifier

if TYPE_CHECKING:
    from fundrouter.execution.order_gateway import OrderSubmissionGateway
    from fundrouter.execution.order_state_machine import OrderStateMachine
    from fundrouter.matching.candidate_pool import CandidatePool
    from fundrouter.monitoring.metrics import EngineMetrics

log = logging.getLogger("fundrouter")


@dataclass
class FailoverConfig:
    """Configuration for FailoverOrchestrator."""
    max_retries: int = 3
    retry_delay_sec: float = 0.5

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_delay_sec < 0:
            raise ValueError("retry_delay_sec must be >= 0")


@dataclass
class MatchResult:
    """Result of one match run."""
    order: Order
    status: OrderStatus
    outcome: Optional[SubmitOutcome] = None
    error: Optional[BaseException] = None
    cancelled: bool = False
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.status in (OrderStatus.REDIRECTED, OrderStatus.AWAITING_EVIDENCE)

    @property
    def attempts(self) -> int:
        return len(self.order.attempts)

    @property
    def endpoint(self) -> Optional[Endpoint]:
        return self.order.endpoint


class FailoverOrchestrator:
    def __init__(
        self,
        pool: "CandidatePool",
        gateway: "OrderSubmissionGateway",
        state_machine: "OrderStateMachine",
        classifier: Optional[RetryClassifier] = None,
        config: Optional[FailoverConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        metrics: Optional["EngineMetrics"] = None,
        log_event: Optional[Callable[..., None]] = None,
    ) -> None:
        """
        Args:
            pool: Candidate filtering/ordering
            gateway: Order submission
            state_machine: Validated order transitions
            classifier: Retryable/terminal failure predicate
            config: Retry bound and delay
            sleep: Awaitable used for the inter-attempt delay
            metrics: Optional Prometheus metrics
            log_event: Callback for structured logging
        """
        self.pool = pool
        self.gateway = gateway
        self.state_machine = state_machine
        self.classifier = classifier or RetryClassifier()
        self.config = config or FailoverConfig()
        self._sleep = sleep
        self.metrics = metrics
        self._log_event = log_event or self._default_log

    def _default_log(self, event: str, **kwargs: Any) -> None:
        log.info(dumps({"event": event, **kwargs}))

    async def run(
        self,
        endpoints: Sequence[Endpoint],
        method: Method | str,
        amount: Any,
        cancel: Optional[asyncio.Event] = None,
    ) -> MatchResult:
        """
        Match the request against endpoints and submit with failover.

        Raises:
            ValidationError: bad method/amount, before any state change
        """
        method, amount = self.pool.registry.validate(method, amount)
        started = now_ms()
        order = Order(amount=amount, method=method)
        self.state_machine.transition(order, OrderStatus.MATCHING, reason="match_started")

        try:
            result = await self._run(order, endpoints, cancel)
        except asyncio.CancelledError:
            self.state_machine.reset(order, reason="task_cancelled")
            raise

        result.duration_ms = now_ms() - started
        if self.metrics:
            label = "CANCELLED" if result.cancelled else result.status.name
            self.metrics.match_results.labels(method=method.value, status=label).inc()
        self._log_event(
            "match_result",
            method=method.value,
            amount=amount,
            status=result.status.name,
            cancelled=result.cancelled,
            attempts=result.attempts,
            endpoint=result.endpoint.id if result.endpoint else None,
            error=str(result.error) if result.error else None,
            duration_ms=result.duration_ms,
        )
        return result

    async def _run(
        self,
        order: Order,
        endpoints: Sequence[Endpoint],
        cancel: Optional[asyncio.Event],
    ) -> MatchResult:
        if cancel is not None and cancel.is_set():
            return self._cancelled(order)

        try:
            session = self.pool.select(endpoints, order.method, order.amount)
        except NoEligibleChannelError as e:
            return self._fail(order, e)
        candidates = session.candidates
        if self.metrics:
            self.metrics.candidates.labels(method=order.method.value).observe(len(candidates))

        policy = self.pool.registry.policy(order.method)
        if policy.manual_evidence:
            endpoint = candidates[0]
            order.endpoint = endpoint
            self.state_machine.transition(
                order, OrderStatus.AWAITING_EVIDENCE, reason="manual_method", metadata={"endpoint": endpoint.id}
            )
            return MatchResult(order=order, status=OrderStatus.AWAITING_EVIDENCE, outcome=EvidenceRequired(endpoint))

        limit = min(len(candidates), self.config.max_retries)
        last_error: Optional[BaseException] = None

        for index in range(limit):
            if index > 0:
                await self._sleep(self.config.retry_delay_sec)
            if cancel is not None and cancel.is_set():
                return self._cancelled(order)

            endpoint = candidates[index]
            self.state_machine.transition(
                order, OrderStatus.ATTEMPTING, reason=f"attempt_{index}", metadata={"endpoint": endpoint.id}
            )
            attempt = Attempt(endpoint=endpoint, index=index)
            order.attempts.append(attempt)

            try:
                outcome = await self.gateway.submit(endpoint, order.amount, order.method)
            except Exception as exc:
                attempt.finished_at_ms = now_ms()
                attempt.error = str(exc)
                kind = self.classifier.classify(exc)
                if kind is FailureKind.TERMINAL:
                    attempt.outcome = AttemptOutcome.TERMINAL_FAILURE
                    self._count_attempt(order, attempt)
                    return self._fail(order, exc)

                attempt.outcome = AttemptOutcome.RETRYABLE_FAILURE
                self._count_attempt(order, attempt)
                last_error = exc
                if index + 1 < limit:
                    if self.metrics:
                        self.metrics.failovers.labels(method=order.method.value).inc()
                    log.warning(dumps({
                        "event": "failover_retry",
                        "method": order.method.value,
                        "endpoint": endpoint.id,
                        "attempt": index,
                        "error": str(exc),
                    }))
                continue

            attempt.finished_at_ms = now_ms()
            attempt.outcome = AttemptOutcome.SUCCESS
            self._count_attempt(order, attempt)
            order.endpoint = endpoint
            return self._succeed(order, outcome)

        exhausted = ChannelsExhaustedError(
            f"all channels exhausted after {len(order.attempts)} attempt(s)",
            attempts=len(order.attempts),
            last_error=last_error,
        )
        return self._fail(order, exhausted)

    def _succeed(self, order: Order, outcome: SubmitOutcome) -> MatchResult:
        if isinstance(outcome, RedirectResult):
            order.reference = outcome.reference
            order.redirect_url = outcome.url
            self.state_machine.transition(order, OrderStatus.REDIRECTED, reason="pay_url_received")
            return MatchResult(order=order, status=OrderStatus.REDIRECTED, outcome=outcome)

        order.reference = outcome.reference
        self.state_machine.transition(order, OrderStatus.AWAITING_EVIDENCE, reason="no_pay_url")
        return MatchResult(order=order, status=OrderStatus.AWAITING_EVIDENCE, outcome=outcome)

    def _fail(self, order: Order, error: BaseException) -> MatchResult:
        order.error = str(error)
        self.state_machine.transition(order, OrderStatus.FAILED, reason=type(error).__name__)
        # Failed sessions are never re-entered.
        self.state_machine.reset(order, reason="failed")
        return MatchResult(order=order, status=OrderStatus.FAILED, error=error)

    def _cancelled(self, order: Order) -> MatchResult:
        self.state_machine.reset(order, reason="cancelled")
        return MatchResult(order=order, status=OrderStatus.IDLE, cancelled=True)

    def _count_attempt(self, order: Order, attempt: Attempt) -> None:
        if self.metrics:
            self.metrics.match_attempts.labels(
                method=order.method.value, outcome=attempt.outcome.name.lower()
            ).inc()
