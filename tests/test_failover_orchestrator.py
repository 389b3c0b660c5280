"""
Tests for FailoverOrchestrator - bounded sequential failover.

Tests cover:
- k leading retryable failures then success
- exhaustion at min(N, max_retries)
- terminal failures stop immediately
- cancellation before each attempt
- manual-evidence bypass
- the wechat E1/E2 scenario
"""

import asyncio

import pytest
from prometheus_client import CollectorRegistry

from fundrouter.core.errors import (
    ApiError,
    ChannelsExhaustedError,
    NetworkError,
    NoEligibleChannelError,
    ValidationError,
)
from fundrouter.core.methods import Method
from fundrouter.core.models import AttemptOutcome, EvidenceRequired, OrderStatus, RedirectResult
from fundrouter.execution.order_state_machine import OrderStateMachine
from fundrouter.execution.retry_policy import RetryClassifier
from fundrouter.matching.candidate_pool import CandidatePool
from fundrouter.matching.session_flags import InMemorySessionFlags
from fundrouter.monitoring.metrics import EngineMetrics
from fundrouter.orchestrator.failover_orchestrator import FailoverConfig, FailoverOrchestrator

from fakes import RecordingSleep, ScriptedGateway, make_endpoint

NO_URL = "未获取到支付地址"


def retryable() -> ApiError:
    return ApiError(NO_URL, code=0)


def build(registry, rng, gateway, max_retries=3, sleep=None, metrics=None, classifier=None):
    pool = CandidatePool(registry, InMemorySessionFlags(), rng=rng)
    sm = OrderStateMachine(log_event=lambda *a, **k: None)
    sleep = sleep or RecordingSleep()
    orch = FailoverOrchestrator(
        pool,
        gateway,
        sm,
        classifier=classifier or RetryClassifier(),
        config=FailoverConfig(max_retries=max_retries, retry_delay_sec=0.5),
        sleep=sleep,
        metrics=metrics,
        log_event=lambda *a, **k: None,
    )
    return orch, sleep


def usdt_endpoints(n):
    return [make_endpoint(i, Method.USDT, weight=i) for i in range(1, n + 1)]


class TestFailoverBound:
    """Attempt counts and selected endpoint."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("k", [0, 1, 2, 3])
    async def test_k_failures_then_success(self, registry, rng, k):
        eps = usdt_endpoints(5)
        gateway = ScriptedGateway({ep.id: retryable() for ep in eps[:k]})
        orch, sleep = build(registry, rng, gateway, max_retries=10)

        result = await orch.run(eps, "usdt", 200)

        assert result.status is OrderStatus.REDIRECTED
        assert result.attempts == k + 1
        assert gateway.calls == [ep.id for ep in eps[: k + 1]]
        assert result.endpoint == eps[k]
        assert [a.outcome for a in result.order.attempts[:k]] == [AttemptOutcome.RETRYABLE_FAILURE] * k
        assert result.order.attempts[-1].outcome is AttemptOutcome.SUCCESS
        assert sleep.delays == [0.5] * k

    @pytest.mark.asyncio
    @pytest.mark.parametrize("n,max_retries,expected", [(5, 3, 3), (2, 3, 2), (3, 3, 3), (1, 3, 1)])
    async def test_all_retryable_exhausts_at_bound(self, registry, rng, n, max_retries, expected):
        eps = usdt_endpoints(n)
        gateway = ScriptedGateway({ep.id: retryable() for ep in eps})
        orch, sleep = build(registry, rng, gateway, max_retries=max_retries)

        result = await orch.run(eps, Method.USDT, 200)

        assert result.status is OrderStatus.FAILED
        assert result.attempts == expected
        assert isinstance(result.error, ChannelsExhaustedError)
        assert result.error.attempts == expected
        assert isinstance(result.error.last_error, ApiError)
        assert result.order.status is OrderStatus.IDLE
        assert len(sleep.delays) == expected - 1

    @pytest.mark.asyncio
    async def test_zero_retries_makes_no_attempt(self, registry, rng):
        eps = usdt_endpoints(3)
        gateway = ScriptedGateway({ep.id: retryable() for ep in eps})
        orch, sleep = build(registry, rng, gateway, max_retries=0)

        result = await orch.run(eps, "usdt", 200)

        assert result.status is OrderStatus.FAILED
        assert result.attempts == 0
        assert isinstance(result.error, ChannelsExhaustedError)
        assert result.error.attempts == 0
        assert gateway.calls == []
        assert sleep.delays == []
        assert result.order.status is OrderStatus.IDLE

    def test_negative_bounds_rejected(self):
        with pytest.raises(ValueError):
            FailoverConfig(max_retries=-1)
        with pytest.raises(ValueError):
            FailoverConfig(retry_delay_sec=-0.5)

    @pytest.mark.asyncio
    async def test_attempts_are_never_concurrent(self, registry, rng):
        eps = usdt_endpoints(3)
        gateway = ScriptedGateway({1: retryable(), 2: retryable()})
        orch, _ = build(registry, rng, gateway)
        await orch.run(eps, "usdt", 200)
        assert gateway.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_network_error_fails_over(self, registry, rng):
        eps = usdt_endpoints(3)
        gateway = ScriptedGateway({1: NetworkError("connect timeout")})
        orch, _ = build(registry, rng, gateway)
        result = await orch.run(eps, "usdt", 200)
        assert result.status is OrderStatus.REDIRECTED
        assert result.endpoint.id == 2

    @pytest.mark.asyncio
    async def test_network_error_terminal_when_configured(self, registry, rng):
        eps = usdt_endpoints(3)
        gateway = ScriptedGateway({1: NetworkError("connect timeout")})
        orch, _ = build(registry, rng, gateway, classifier=RetryClassifier(network_errors_retryable=False))
        result = await orch.run(eps, "usdt", 200)
        assert result.status is OrderStatus.FAILED
        assert isinstance(result.error, NetworkError)
        assert result.attempts == 1


class TestTerminalFailures:
    @pytest.mark.asyncio
    async def test_terminal_error_surfaces_immediately(self, registry, rng):
        eps = usdt_endpoints(3)
        err = ApiError("充值通道维护中", code=0)
        gateway = ScriptedGateway({1: err})
        orch, sleep = build(registry, rng, gateway)

        result = await orch.run(eps, "usdt", 200)

        assert result.status is OrderStatus.FAILED
        assert result.error is err
        assert result.attempts == 1
        assert result.order.attempts[0].outcome is AttemptOutcome.TERMINAL_FAILURE
        assert gateway.calls == [1]
        assert sleep.delays == []
        assert result.order.status is OrderStatus.IDLE

    @pytest.mark.asyncio
    async def test_terminal_after_retryable(self, registry, rng):
        eps = usdt_endpoints(3)
        gateway = ScriptedGateway({1: retryable(), 2: ApiError("请先登录", code=303)})
        orch, _ = build(registry, rng, gateway)
        result = await orch.run(eps, "usdt", 200)
        assert result.status is OrderStatus.FAILED
        assert result.attempts == 2
        assert result.error.code == 303

    @pytest.mark.asyncio
    async def test_no_eligible_channel(self, registry, rng):
        gateway = ScriptedGateway()
        orch, _ = build(registry, rng, gateway)
        result = await orch.run([make_endpoint(1, Method.ALIPAY)], "usdt", 200)
        assert result.status is OrderStatus.FAILED
        assert isinstance(result.error, NoEligibleChannelError)
        assert result.attempts == 0
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_validation_error_raised_before_any_state_change(self, registry, rng):
        gateway = ScriptedGateway()
        orch, _ = build(registry, rng, gateway)
        with pytest.raises(ValidationError) as exc_info:
            await orch.run(usdt_endpoints(2), "usdt", 50)
        assert exc_info.value.field == "amount"
        with pytest.raises(ValidationError):
            await orch.run(usdt_endpoints(2), "", 500)
        assert gateway.calls == []
        assert orch.state_machine.get_stats()["total_matches"] == 0


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_during_retry_delay_aborts_to_idle(self, registry, rng):
        eps = usdt_endpoints(3)
        cancel = asyncio.Event()
        gateway = ScriptedGateway({1: retryable()})
        orch, _ = build(registry, rng, gateway, sleep=RecordingSleep(on_sleep=cancel.set))

        result = await orch.run(eps, "usdt", 200, cancel=cancel)

        assert result.cancelled is True
        assert result.status is OrderStatus.IDLE
        assert result.order.status is OrderStatus.IDLE
        assert result.attempts == 1
        assert gateway.calls == [1]
        assert result.error is None

    @pytest.mark.asyncio
    async def test_cancel_before_start_makes_no_attempt(self, registry, rng):
        cancel = asyncio.Event()
        cancel.set()
        gateway = ScriptedGateway()
        orch, _ = build(registry, rng, gateway)
        result = await orch.run(usdt_endpoints(2), "usdt", 200, cancel=cancel)
        assert result.cancelled is True
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_task_cancellation_resets_order(self, registry, rng):
        started = asyncio.Event()

        class HangingGateway:
            async def submit(self, endpoint, amount, method):
                started.set()
                await asyncio.sleep(3600)

        orch, _ = build(registry, rng, HangingGateway())
        task = asyncio.create_task(orch.run(usdt_endpoints(1), "usdt", 200))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert orch.state_machine.get_stats()["total_reset"] == 1


class TestManualAndFallback:
    @pytest.mark.asyncio
    async def test_manual_method_bypasses_submission(self, registry, rng):
        eps = [
            make_endpoint(1, Method.BANK_CARD, weight=3),
            make_endpoint(2, Method.BANK_CARD, weight=1),
        ]
        gateway = ScriptedGateway()
        orch, sleep = build(registry, rng, gateway)

        result = await orch.run(eps, "bank_card", 1000)

        assert result.status is OrderStatus.AWAITING_EVIDENCE
        assert isinstance(result.outcome, EvidenceRequired)
        assert result.endpoint.id == 2
        assert result.attempts == 0
        assert gateway.calls == []
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_success_without_url_awaits_evidence(self, registry, rng):
        eps = usdt_endpoints(2)
        gateway = ScriptedGateway({1: EvidenceRequired(endpoint=eps[0])})
        orch, _ = build(registry, rng, gateway)
        result = await orch.run(eps, "usdt", 200)
        assert result.status is OrderStatus.AWAITING_EVIDENCE
        assert result.endpoint.id == 1
        assert result.attempts == 1


class TestConcreteScenario:
    @pytest.mark.asyncio
    async def test_wechat_e1_fails_retryably_then_e2_redirects(self, registry, rng):
        e1 = make_endpoint(1, Method.WECHAT, weight=1)
        e2 = make_endpoint(2, Method.WECHAT, weight=2)
        gateway = ScriptedGateway({1: ApiError(f"{NO_URL}，请稍后再试", code=0)})
        orch, sleep = build(registry, rng, gateway)

        result = await orch.run([e2, e1], "wechat", 100)

        assert result.status is OrderStatus.REDIRECTED
        assert result.attempts == 2
        assert result.endpoint == e2
        assert gateway.calls == [1, 2]
        assert sleep.delays == [0.5]
        assert isinstance(result.outcome, RedirectResult)
        assert result.order.redirect_url == result.outcome.url
        assert result.order.status is OrderStatus.REDIRECTED
        statuses = [t.to_status for t in result.order.transitions]
        assert statuses == [
            OrderStatus.MATCHING,
            OrderStatus.ATTEMPTING,
            OrderStatus.ATTEMPTING,
            OrderStatus.REDIRECTED,
        ]

    @pytest.mark.asyncio
    async def test_fresh_order_and_reference_per_run(self, registry, rng):
        eps = usdt_endpoints(2)
        orch, _ = build(registry, rng, ScriptedGateway())
        first = await orch.run(eps, "usdt", 200)
        second = await orch.run(eps, "usdt", 200)
        assert first.order is not second.order
        assert first.order.reference.client_ref != second.order.reference.client_ref


class TestMetrics:
    @pytest.mark.asyncio
    async def test_metrics_recorded(self, registry, rng):
        reg = CollectorRegistry()
        metrics = EngineMetrics(reg)
        eps = usdt_endpoints(3)
        orch, _ = build(registry, rng, ScriptedGateway({1: retryable()}), metrics=metrics)

        await orch.run(eps, "usdt", 200)

        assert reg.get_sample_value("match_results_total", {"method": "usdt", "status": "REDIRECTED"}) == 1.0
        assert reg.get_sample_value("failovers_total", {"method": "usdt"}) == 1.0
        assert reg.get_sample_value(
            "match_attempts_total", {"method": "usdt", "outcome": "retryable_failure"}
        ) == 1.0
        assert reg.get_sample_value("match_attempts_total", {"method": "usdt", "outcome": "success"}) == 1.0
