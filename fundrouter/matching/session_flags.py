"""
Session-scoped "has matched" markers for sticky payment methods.

The host owns the actual storage (browser session, per-connection dict, ...)
and plugs it in through the SessionFlags protocol.
"""

from __future__ import annotations

from typing import Dict, Protocol, runtime_checkable

from fundrouter.core.methods import Method


def flag_key(method: Method) -> str:
    return f"HAS_MATCHED_{method.value.upper()}"


@runtime_checkable
class SessionFlags(Protocol):
    def get(self, method: Method) -> bool: ...

    def set(self, method: Method) -> None: ...


class InMemorySessionFlags:
    """Dict-backed flags. One instance per user session."""

    def __init__(self) -> None:
        self._flags: Dict[str, bool] = {}

    def get(self, method: Method) -> bool:
        return self._flags.get(flag_key(method), False)

    def set(self, method: Method) -> None:
        self._flags[flag_key(method)] = True

    def clear(self) -> None:
        self._flags.clear()

    def snapshot(self) -> Dict[str, bool]:
        return dict(self._flags)
