"""
Test doubles and factories shared by the fundrouter tests.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from fundrouter.core.methods import Method
from fundrouter.core.models import Endpoint, EvidenceFile, OrderReference, RedirectResult
from fundrouter.core.utils import new_client_ref


def make_endpoint(
    id: int,
    method: Method = Method.USDT,
    weight: Optional[float] = None,
    lo: Optional[float] = None,
    hi: Optional[float] = None,
    account_number: str = "6222000011112222",
) -> Endpoint:
    return Endpoint(
        id=id,
        method=method,
        display_name=method.value,
        account_name=f"acct-{id}",
        account_number=account_number,
        sort_weight=weight,
        min_amount=lo,
        max_amount=hi,
    )


def make_image(name: str = "proof.png", size: int = 1024, content_type: str = "image/png") -> EvidenceFile:
    return EvidenceFile(name=name, content_type=content_type, content=b"\x89" * size)


def redirect_for(endpoint: Endpoint) -> RedirectResult:
    return RedirectResult(
        url=f"https://pay.example/{endpoint.id}",
        reference=OrderReference(client_ref=new_client_ref(), order_id=str(1000 + endpoint.id)),
    )


class ScriptedGateway:
    """
    Gateway double for the orchestrator.

    `script` maps endpoint id -> exception to raise or outcome to return.
    Endpoints without a script entry succeed with a RedirectResult.
    """

    def __init__(self, script: Optional[Dict[int, Any]] = None) -> None:
        self.script = script or {}
        self.calls: List[int] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def submit(self, endpoint: Endpoint, amount: float, method: Method):
        self.calls.append(endpoint.id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            entry = self.script.get(endpoint.id)
            if isinstance(entry, BaseException):
                raise entry
            if entry is not None:
                return entry
            return redirect_for(endpoint)
        finally:
            self.in_flight -= 1


@dataclass
class FakeOrderService:
    """OrderService double recording every call."""
    responses: List[Union[Dict[str, Any], BaseException]] = field(default_factory=list)
    submit_calls: List[Dict[str, Any]] = field(default_factory=list)
    remark_calls: List[Dict[str, Any]] = field(default_factory=list)
    remark_error: Optional[BaseException] = None
    _next_id: int = 500

    async def submit_order(self, **kwargs: Any) -> Dict[str, Any]:
        self.submit_calls.append(kwargs)
        if self.responses:
            resp = self.responses.pop(0)
            if isinstance(resp, BaseException):
                raise resp
            return resp
        self._next_id += 1
        if kwargs.get("payment_method") == "offline":
            return {"order_id": self._next_id}
        return {"order_id": self._next_id, "pay_url": f"https://pay.example/o/{self._next_id}"}

    async def update_remark(self, **kwargs: Any) -> Any:
        self.remark_calls.append(kwargs)
        if self.remark_error is not None:
            raise self.remark_error
        return None


class FakeUploader:
    """
    Upload double. Files named in `failures` raise; files named in `gates`
    wait for their event before completing.
    """

    def __init__(self, failures: Optional[Dict[str, BaseException]] = None) -> None:
        self.failures = failures or {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.started: List[str] = []
        self.finished: List[str] = []

    def gate(self, name: str) -> asyncio.Event:
        ev = asyncio.Event()
        self.gates[name] = ev
        return ev

    async def upload(self, file: EvidenceFile) -> str:
        self.started.append(file.name)
        gate = self.gates.get(file.name)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        self.finished.append(file.name)
        if file.name in self.failures:
            raise self.failures[file.name]
        return f"https://cdn.example/{file.name}"


class RecordingSleep:
    def __init__(self, on_sleep=None) -> None:
        self.delays: List[float] = []
        self._on_sleep = on_sleep

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._on_sleep:
            self._on_sleep()


class FakeDirectory:
    def __init__(self, endpoints: List[Endpoint]) -> None:
        self.endpoints = endpoints
        self.calls = 0

    async def list(self, method=None) -> List[Endpoint]:
        self.calls += 1
        return [ep for ep in self.endpoints if method is None or ep.method is method]




class FakeSurface:
    def __init__(self) -> None:
        self.shown: List[str] = []
        self.closed = 0
        self.loading: Optional[bool] = None

    def show(self, url: str) -> None:
        self.shown.append(url)

    def close(self) -> None:
        self.closed += 1

    def set_loading(self, loading: bool) -> None:
        self.loading = loading
