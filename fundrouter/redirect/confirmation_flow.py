"""
RedirectConfirmationFlow: hosted payment page lifecycle and reconciliation.

States:

    OPENED ──┬──> RELOADED ──┐
             │      ▲   │    │
             │      └───┘    │
             ├───────────────┴──> USER_CONFIRMED_SUCCESS  (confirm remark, Order -> Confirmed)
             ├──────────────────> USER_CANCELLED          (Order -> Idle, no confirm)
             └──────────────────> TIMED_OUT               (Order -> Idle, no confirm)

The timeout runs as a background task started on open() and restarted by
refresh_url(). Expiry is handled exactly like a user cancel.

Usage:
    flow = RedirectConfirmationFlow(order, gateway, state_machine, timeout_sec=300)
    flow.open()
    ...
    await flow.user_confirmed_success()
    state = await flow.wait()
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, Optional, TYPE_CHECKING

from fundrouter.core.errors import FlowClosedError, FundRouterError
from fundrouter.core.json_utils import dumps
from fundrouter.core.models import Order, OrderStatus, RedirectResult
from fundrouter.redirect.surface import ConsoleSurface, RedirectSurface

if TYPE_CHECKING:
    from fundrouter.execution.order_gateway import OrderSubmissionGateway
    from fundrouter.execution.order_state_machine import OrderStateMachine
    from fundrouter.monitoring.metrics import EngineMetrics

log = logging.getLogger("fundrouter")

DEFAULT_TIMEOUT_SEC = 300.0
DEFAULT_CONFIRM_REMARK = "用户确认支付成功"


class FlowState(Enum):
    PENDING = auto()
    OPENED = auto()
    RELOADED = auto()
    USER_CONFIRMED_SUCCESS = auto()
    USER_CANCELLED = auto()
    TIMED_OUT = auto()


TERMINAL_FLOW_STATES = frozenset({
    FlowState.USER_CONFIRMED_SUCCESS,
    FlowState.USER_CANCELLED,
    FlowState.TIMED_OUT,
})

UrlRefresher = Callable[[], Awaitable[RedirectResult]]


class RedirectConfirmationFlow:
    def __init__(
        self,
        order: Order,
        gateway: "OrderSubmissionGateway",
        state_machine: "OrderStateMachine",
        surface: Optional[RedirectSurface] = None,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        confirm_remark: str = DEFAULT_CONFIRM_REMARK,
        refresher: Optional[UrlRefresher] = None,
        metrics: Optional["EngineMetrics"] = None,
        log_event: Optional[Callable[..., None]] = None,
    ) -> None:
        """
        Args:
            order: A REDIRECTED order carrying redirect_url and reference
            gateway: Used for the confirm remark
            state_machine: Validated order transitions
            surface: Where the payment page is shown
            timeout_sec: Seconds before the flow times out
            confirm_remark: Remark attached on user-confirmed success
            refresher: Default hook for refresh_url()
            metrics: Optional Prometheus metrics
            log_event: Callback for structured logging
        """
        self.order = order
        self.gateway = gateway
        self.state_machine = state_machine
        self.surface = surface or ConsoleSurface()
        self.timeout_sec = timeout_sec
        self.confirm_remark = confirm_remark
        self._refresher = refresher
        self.metrics = metrics
        self._log_event = log_event or self._default_log

        self.state = FlowState.PENDING
        self.loading = False
        self._timer: Optional[asyncio.Task] = None
        self._done = asyncio.Event()
        self._stats: Dict[str, int] = {"reloads": 0, "refreshes": 0, "confirm_errors": 0}

    def _default_log(self, event: str, **kwargs: Any) -> None:
        log.info(dumps({"event": event, **kwargs}))

    @property
    def url(self) -> Optional[str]:
        return self.order.redirect_url

    @property
    def closed(self) -> bool:
        return self.state in TERMINAL_FLOW_STATES

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def _ensure_open(self) -> None:
        if self.state is FlowState.PENDING:
            raise FlowClosedError("redirect flow has not been opened")
        if self.closed:
            raise FlowClosedError(f"redirect flow already finished: {self.state.name}")

    def open(self) -> None:
        """Show the payment page and start the timeout. Needs a running loop."""
        if self.state is not FlowState.PENDING:
            raise FlowClosedError(f"redirect flow already opened: {self.state.name}")
        if self.order.status is not OrderStatus.REDIRECTED or not self.order.redirect_url:
            raise FlowClosedError(f"order is not redirected: {self.order.status.name}")
        self._show()
        self.state = FlowState.OPENED
        self._start_timer()
        self._log_event("redirect_opened", order=self._order_id(), timeout_sec=self.timeout_sec)

    def reload(self) -> None:
        """Discard the surface and open a fresh one on the same URL."""
        self._ensure_open()
        self.surface.close()
        self._show()
        self.state = FlowState.RELOADED
        self._stats["reloads"] += 1

    def mark_loaded(self) -> None:
        self.loading = False
        self.surface.set_loading(False)

    async def refresh_url(self, refresher: Optional[UrlRefresher] = None) -> RedirectResult:
        """
        Swap in a renewed redirect URL without re-running matching.

        The refresher's RedirectResult replaces the order's URL and reference,
        the surface is reopened and the timeout restarts.
        """
        self._ensure_open()
        hook = refresher or self._refresher
        if hook is None:
            raise FlowClosedError("no url refresher configured")
        result = await hook()
        # The user may have acted while the refresher was running.
        self._ensure_open()
        self.order.redirect_url = result.url
        self.order.reference = result.reference
        self.state_machine.transition(self.order, OrderStatus.REDIRECTED, reason="url_refresh")
        self.surface.close()
        self._show()
        self._start_timer()
        self._stats["refreshes"] += 1
        if self.metrics:
            self.metrics.redirect_refreshes.inc()
        self._log_event("redirect_url_refreshed", order=self._order_id())
        return result

    async def user_confirmed_success(self, remark: Optional[str] = None) -> FlowState:
        """
        Attach the success remark, then move the order to CONFIRMED.

        A failed remark update is logged and does not block confirmation.
        The timeout keeps running while the remark is attached; if it fires
        first the flow ends TIMED_OUT.
        """
        self._ensure_open()
        reference = self.order.reference
        if reference is not None:
            try:
                await self.gateway.confirm(reference, remark or self.confirm_remark)
            except FundRouterError as e:
                self._stats["confirm_errors"] += 1
                self._log_event("redirect_confirm_error", order=self._order_id(), error=str(e))
        # The user may have cancelled, or the timeout fired, while confirm was awaited.
        if self.closed:
            return self.state
        self._stop_timer()
        self.state_machine.transition(self.order, OrderStatus.CONFIRMED, reason="user_confirmed")
        self._finish(FlowState.USER_CONFIRMED_SUCCESS)
        return self.state

    def user_cancelled(self) -> FlowState:
        self._ensure_open()
        self._stop_timer()
        self.state_machine.reset(self.order, reason="redirect_cancelled")
        self._finish(FlowState.USER_CANCELLED)
        return self.state

    def timed_out(self) -> FlowState:
        self._ensure_open()
        self._stop_timer()
        self.state_machine.reset(self.order, reason="redirect_timeout")
        self._finish(FlowState.TIMED_OUT)
        return self.state

    async def wait(self) -> FlowState:
        """Block until the flow reaches a terminal state."""
        await self._done.wait()
        return self.state

    def _show(self) -> None:
        self.surface.show(self.order.redirect_url)
        self.loading = True

    def _finish(self, state: FlowState) -> None:
        self.state = state
        self.loading = False
        self.surface.close()
        self._done.set()
        if self.metrics:
            self.metrics.redirect_outcomes.labels(outcome=state.name.lower()).inc()
        self._log_event("redirect_finished", order=self._order_id(), outcome=state.name)

    def _start_timer(self) -> None:
        self._stop_timer()
        self._timer = asyncio.create_task(self._timeout_loop())

    def _stop_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None and timer is not asyncio.current_task() and not timer.done():
            timer.cancel()

    async def _timeout_loop(self) -> None:
        await asyncio.sleep(self.timeout_sec)
        if not self.closed:
            self.timed_out()

    def _order_id(self) -> Optional[str]:
        ref = self.order.reference
        return ref.backend_id or ref.client_ref if ref else None
