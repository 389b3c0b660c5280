"""
OrderSubmissionGateway: the single entry point for recharge order calls.

Wraps OrderService and maps backend responses onto the two submission
shapes:
- RedirectResult: the backend returned a hosted payment link
- EvidenceRequired: the method settles manually, or the backend accepted
  the order without a link, so the user uploads proof instead

Every successful call mints exactly one OrderReference with a fresh
client_ref; references are never reused.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Set, TYPE_CHECKING

from fundrouter.core.errors import ValidationError
from fundrouter.core.json_utils import dumps
from fundrouter.core.methods import Method, MethodRegistry
from fundrouter.core.models import (
    Endpoint,
    EvidenceRequired,
    OrderAccepted,
    OrderReference,
    RedirectResult,
    SubmitOutcome,
)
from fundrouter.core.utils import mask_account, new_client_ref

if TYPE_CHECKING:
    from fundrouter.infra.order_service import OrderService
    from fundrouter.monitoring.metrics import EngineMetrics

log = logging.getLogger("fundrouter")

_CARD_SUFFIX_RE = re.compile(r"^\d{4}$")


@dataclass
class OrderGatewayConfig:
    """Configuration for OrderSubmissionGateway."""
    online_payment_method: str = "online"
    offline_payment_method: str = "offline"
    log_event_callback: Optional[Callable[..., None]] = None


class OrderSubmissionGateway:
    def __init__(
        self,
        orders: "OrderService",
        registry: MethodRegistry,
        config: Optional[OrderGatewayConfig] = None,
        metrics: Optional["EngineMetrics"] = None,
    ) -> None:
        """
        Args:
            orders: Backend order endpoints
            registry: Method policies (manual path, card suffix rule)
            config: Optional configuration
            metrics: Optional Prometheus metrics
        """
        self.orders = orders
        self.registry = registry
        self.config = config or OrderGatewayConfig()
        self.metrics = metrics
        self._log_event = self.config.log_event_callback or self._default_log
        self._issued_refs: Set[str] = set()
        self._confirmed: Dict[str, str] = {}

    def _default_log(self, event: str, **kwargs: Any) -> None:
        log.info(dumps({"event": event, **kwargs}))

    @property
    def issued_count(self) -> int:
        return len(self._issued_refs)

    def _new_reference(self, data: Dict[str, Any]) -> OrderReference:
        ref = new_client_ref()
        while ref in self._issued_refs:
            ref = new_client_ref()
        self._issued_refs.add(ref)
        order_id = data.get("order_id")
        order_no = data.get("order_no")
        return OrderReference(
            client_ref=ref,
            order_id=str(order_id) if order_id not in (None, "") else None,
            order_no=str(order_no) if order_no not in (None, "") else None,
        )

    async def submit(self, endpoint: Endpoint, amount: float, method: Method) -> SubmitOutcome:
        """
        Submit an automatable order against one endpoint.

        Manual-evidence methods return EvidenceRequired without a backend call.
        Backend and network errors propagate unchanged; classifying them is
        the caller's job.
        """
        policy = self.registry.policy(method)
        if policy.manual_evidence:
            return EvidenceRequired(endpoint=endpoint)

        started = time.monotonic()
        data = await self.orders.submit_order(
            company_account_id=endpoint.id,
            amount=amount,
            payment_type=method.value,
            payment_method=self.config.online_payment_method,
        )
        if self.metrics:
            self.metrics.submit_latency_ms.labels(method=method.value).observe(
                (time.monotonic() - started) * 1000.0
            )

        reference = self._new_reference(data)
        pay_url = data.get("pay_url")
        if pay_url:
            self._log_event(
                "order_submitted",
                method=method.value,
                endpoint=endpoint.id,
                amount=amount,
                order=reference.backend_id,
                client_ref=reference.client_ref,
            )
            return RedirectResult(url=str(pay_url), reference=reference)

        self._log_event(
            "order_submitted_without_url",
            method=method.value,
            endpoint=endpoint.id,
            order=reference.backend_id,
        )
        return EvidenceRequired(endpoint=endpoint, reference=reference)

    async def submit_with_evidence(
        self,
        endpoint: Endpoint,
        amount: float,
        evidence_urls: Sequence[str],
        last_four: Optional[str] = None,
    ) -> OrderAccepted:
        """
        Submit a manual order carrying uploaded proof-of-payment URLs.

        Raises:
            ValidationError: no evidence, or a missing/malformed card suffix
                for card-based methods
        """
        urls = [u for u in evidence_urls if u]
        if not urls:
            raise ValidationError("upload at least one payment screenshot", field="evidence")

        policy = self.registry.policy(endpoint.method)
        suffix = (last_four or "").strip()
        if policy.requires_card_suffix:
            if not _CARD_SUFFIX_RE.match(suffix):
                raise ValidationError("enter the last 4 digits of the paying card", field="last_four")
        elif suffix and not _CARD_SUFFIX_RE.match(suffix):
            raise ValidationError("card suffix must be 4 digits", field="last_four")

        data = await self.orders.submit_order(
            company_account_id=endpoint.id,
            amount=amount,
            payment_type=endpoint.method.value,
            payment_method=self.config.offline_payment_method,
            screenshot_urls=urls,
            card_last_four=suffix or None,
        )
        reference = self._new_reference(data)
        self._log_event(
            "order_submitted_with_evidence",
            method=endpoint.method.value,
            endpoint=endpoint.id,
            account=mask_account(endpoint.account_number),
            amount=amount,
            evidence=len(urls),
            order=reference.backend_id,
        )
        return OrderAccepted(reference=reference)

    async def confirm(self, reference: OrderReference, remark: str) -> bool:
        """
        Attach the user's success remark to the backend order.

        Repeating a confirm with the same remark is a no-op. Returns False when
        the reference carries no backend id to attach to.
        """
        if self._confirmed.get(reference.client_ref) == remark:
            return True
        if not reference.backend_id:
            self._log_event("order_confirm_skipped", client_ref=reference.client_ref, reason="no_backend_id")
            return False
        await self.orders.update_remark(
            user_remark=remark,
            order_id=reference.order_id,
            order_no=None if reference.order_id else reference.order_no,
        )
        self._confirmed[reference.client_ref] = remark
        self._log_event("order_confirmed", order=reference.backend_id, client_ref=reference.client_ref)
        return True
