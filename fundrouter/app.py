"""
RechargeSession: one recharge screen, from entry to leave.

Owns the endpoint snapshot loaded on entry, runs matches through the
failover orchestrator, holds the evidence coordinator for the manual path
and the redirect flow for the hosted-payment path, and tears all of it down
on leave().
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, TYPE_CHECKING

from fundrouter.config.method_config import load_method_overrides
from fundrouter.core.errors import ChannelError, FlowClosedError, ValidationError
from fundrouter.core.json_utils import dumps
from fundrouter.core.methods import Method, MethodRegistry
from fundrouter.core.models import Endpoint, Order, OrderAccepted, OrderStatus, RedirectResult
from fundrouter.evidence.upload_coordinator import EvidenceUploadCoordinator, Uploader
from fundrouter.execution.order_gateway import OrderGatewayConfig, OrderSubmissionGateway
from fundrouter.execution.order_state_machine import OrderStateMachine
from fundrouter.execution.retry_policy import RetryClassifier
from fundrouter.infra.endpoint_directory import EndpointDirectory
from fundrouter.infra.order_service import OrderService
from fundrouter.infra.upload_service import UploadService
from fundrouter.matching.candidate_pool import CandidatePool
from fundrouter.matching.session_flags import InMemorySessionFlags, SessionFlags
from fundrouter.orchestrator.failover_orchestrator import FailoverConfig, FailoverOrchestrator, MatchResult
from fundrouter.redirect.confirmation_flow import DEFAULT_CONFIRM_REMARK, RedirectConfirmationFlow
from fundrouter.redirect.surface import RedirectSurface

if TYPE_CHECKING:
    from fundrouter.config.config import Settings
    from fundrouter.infra.api_client import ApiClient
    from fundrouter.monitoring.metrics import EngineMetrics

log = logging.getLogger("fundrouter")


@dataclass(frozen=True)
class MethodOption:
    method: Method
    display_name: str
    icon: str = ""


class RechargeSession:
    def __init__(
        self,
        directory: EndpointDirectory,
        gateway: OrderSubmissionGateway,
        uploader: Uploader,
        registry: Optional[MethodRegistry] = None,
        flags: Optional[SessionFlags] = None,
        classifier: Optional[RetryClassifier] = None,
        failover: Optional[FailoverConfig] = None,
        evidence_max_count: int = 8,
        evidence_max_bytes: int = 5 * 1024 * 1024,
        redirect_timeout_sec: float = 300.0,
        confirm_remark: str = DEFAULT_CONFIRM_REMARK,
        state_machine: Optional[OrderStateMachine] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_limit_exceeded: Optional[Callable[[int, int], None]] = None,
        metrics: Optional["EngineMetrics"] = None,
    ) -> None:
        self.directory = directory
        self.gateway = gateway
        self.uploader = uploader
        self.registry = registry or gateway.registry
        self.flags = flags or InMemorySessionFlags()
        self.state_machine = state_machine or OrderStateMachine()
        self.evidence_max_count = evidence_max_count
        self.evidence_max_bytes = evidence_max_bytes
        self.redirect_timeout_sec = redirect_timeout_sec
        self.confirm_remark = confirm_remark
        self.metrics = metrics
        self._on_limit_exceeded = on_limit_exceeded

        self.pool = CandidatePool(self.registry, self.flags, rng=rng)
        self.orchestrator = FailoverOrchestrator(
            self.pool,
            gateway,
            self.state_machine,
            classifier=classifier,
            config=failover,
            sleep=sleep,
            metrics=metrics,
        )

        self.endpoints: List[Endpoint] = []
        self.order: Optional[Order] = None
        self.evidence: Optional[EvidenceUploadCoordinator] = None
        self.flow: Optional[RedirectConfirmationFlow] = None
        self._cancel = asyncio.Event()
        self._running: Optional[asyncio.Task] = None
        # Bumped by every new match and by leave(); a run whose generation
        # is stale no longer owns the screen.
        self._generation = 0
        self._entered = False

    async def enter(self) -> List[Endpoint]:
        """Load the endpoint snapshot for this screen visit."""
        self.endpoints = await self.directory.list()
        self._cancel = asyncio.Event()
        self._entered = True
        log.info(dumps({"event": "session_entered", "endpoints": len(self.endpoints)}))
        return self.endpoints

    def available_methods(self) -> List[MethodOption]:
        """Methods offered by at least one endpoint, first display name wins."""
        seen = {}
        for ep in self.endpoints:
            if ep.method not in seen:
                seen[ep.method] = MethodOption(ep.method, ep.display_name or ep.method.value, ep.icon)
        return list(seen.values())

    async def start_match(self, method: Method | str, amount: Any) -> MatchResult:
        """
        Run a fresh match. A match still running is cancelled and allowed to
        settle first, then any previous order, evidence and redirect flow
        are discarded.

        A run superseded by a later start_match() or by leave() is reset to
        Idle and returned with cancelled=True; it never becomes the
        session's order.

        Raises:
            ValidationError: bad method/amount, session not entered, or
                superseded while waiting for the previous match to settle
        """
        if not self._entered:
            raise ValidationError("session not entered")
        self._generation += 1
        generation = self._generation
        await self._stop_running_match()
        if generation != self._generation or not self._entered:
            raise ValidationError("match superseded before it started")
        self._discard_current("new_match")
        cancel = asyncio.Event()
        self._cancel = cancel

        task = asyncio.create_task(self.orchestrator.run(self.endpoints, method, amount, cancel=cancel))
        self._running = task
        try:
            result = await task
        finally:
            if self._running is task:
                self._running = None

        if generation != self._generation:
            self.state_machine.reset(result.order, reason="superseded")
            result.status = result.order.status
            result.cancelled = True
            log.info(dumps({"event": "match_superseded", "method": result.order.method.value}))
            return result

        self.order = result.order
        if result.status is OrderStatus.AWAITING_EVIDENCE:
            self.evidence = EvidenceUploadCoordinator(
                self.uploader,
                max_count=self.evidence_max_count,
                max_bytes=self.evidence_max_bytes,
                evidence=self.order.evidence,
                on_limit_exceeded=self._on_limit_exceeded,
                metrics=self.metrics,
            )
        return result

    async def _stop_running_match(self) -> None:
        task = self._running
        if task is None or task.done():
            return
        self._cancel.set()
        await asyncio.wait({task})

    def cancel_match(self) -> None:
        """Ask a running match to stop before its next attempt."""
        self._cancel.set()

    async def submit_evidence(self, last_four: Optional[str] = None) -> OrderAccepted:
        """
        Wait for in-flight uploads, then submit the manual order.

        On acceptance the order is CONFIRMED and the evidence items are cleared.
        """
        order = self.order
        if order is None or order.status is not OrderStatus.AWAITING_EVIDENCE or self.evidence is None:
            raise ValidationError("no order is awaiting evidence")
        await self.evidence.wait_all()
        urls = list(order.evidence)
        accepted = await self.gateway.submit_with_evidence(order.endpoint, order.amount, urls, last_four=last_four)
        order.reference = accepted.reference
        self.state_machine.transition(order, OrderStatus.CONFIRMED, reason="evidence_accepted")
        self.evidence.reset()
        order.evidence = urls
        return accepted

    def open_redirect(self, surface: Optional[RedirectSurface] = None) -> RedirectConfirmationFlow:
        order = self.order
        if order is None or order.status is not OrderStatus.REDIRECTED:
            raise FlowClosedError("no redirected order to open")
        self.flow = RedirectConfirmationFlow(
            order,
            self.gateway,
            self.state_machine,
            surface=surface,
            timeout_sec=self.redirect_timeout_sec,
            confirm_remark=self.confirm_remark,
            refresher=self._refresh_url,
            metrics=self.metrics,
        )
        self.flow.open()
        return self.flow

    async def _refresh_url(self) -> RedirectResult:
        """Resubmit to the already matched endpoint for a new payment link."""
        order = self.order
        if order is None or order.endpoint is None:
            raise FlowClosedError("no matched endpoint to refresh")
        outcome = await self.gateway.submit(order.endpoint, order.amount, order.method)
        if not isinstance(outcome, RedirectResult):
            raise ChannelError("endpoint returned no payment link on refresh", endpoint_id=order.endpoint.id)
        return outcome

    async def leave(self) -> None:
        """Tear down the screen: stop matching, close flows, drop evidence."""
        self._generation += 1
        self._cancel.set()
        self._discard_current("leave")
        self.endpoints = []
        self._entered = False
        log.info(dumps({"event": "session_left"}))

    def _discard_current(self, reason: str) -> None:
        if self.flow is not None and not self.flow.closed:
            self.flow.user_cancelled()
        self.flow = None
        if self.evidence is not None:
            self.evidence.reset()
        self.evidence = None
        if self.order is not None:
            self.state_machine.reset(self.order, reason=reason)
        self.order = None


def build_session(
    cfg: "Settings",
    api: "ApiClient",
    metrics: Optional["EngineMetrics"] = None,
    flags: Optional[SessionFlags] = None,
    on_limit_exceeded: Optional[Callable[[int, int], None]] = None,
) -> RechargeSession:
    """Wire a RechargeSession from settings and a shared ApiClient."""
    registry = MethodRegistry(
        overrides=load_method_overrides(cfg.method_config_path),
        min_amount=cfg.min_amount,
    )
    gateway = OrderSubmissionGateway(OrderService(api), registry, config=OrderGatewayConfig(), metrics=metrics)
    classifier = RetryClassifier.build(
        patterns=cfg.retryable_patterns,
        codes=cfg.retryable_codes,
        network_errors_retryable=cfg.network_errors_retryable,
    )
    return RechargeSession(
        directory=EndpointDirectory(api),
        gateway=gateway,
        uploader=UploadService(api),
        registry=registry,
        flags=flags,
        classifier=classifier,
        failover=FailoverConfig(max_retries=cfg.max_retries, retry_delay_sec=cfg.retry_delay_sec),
        evidence_max_count=cfg.evidence_max_count,
        evidence_max_bytes=cfg.evidence_max_bytes,
        redirect_timeout_sec=cfg.redirect_timeout_sec,
        confirm_remark=cfg.confirm_remark,
        on_limit_exceeded=on_limit_exceeded,
        metrics=metrics,
    )
