"""
Payment methods as a closed set with per-method policy records.

Adding a method or changing how it is matched is a data change here (or in
the YAML overrides file), not a new branch in the matching code.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from fundrouter.core.errors import ValidationError
from fundrouter.core.utils import to_float_safe

DEFAULT_MIN_AMOUNT = 100.0


class Method(Enum):
    ALIPAY = "alipay"
    WECHAT = "wechat"
    BANK_CARD = "bank_card"
    USDT = "usdt"

    @classmethod
    def parse(cls, value: Any) -> "Method":
        if isinstance(value, Method):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"unsupported payment method: {value!r}", field="method") from None


def _no_extra_check(amount: float) -> None:
    return None


@dataclass(frozen=True)
class MethodPolicy:
    """
    How a method is matched and settled.

    sticky: first match in a session is weight-ordered, later ones uniform random
    manual_evidence: no automatable submission; the user uploads proof instead
    requires_card_suffix: evidence submission needs the payer's 4-digit card suffix
    """
    sticky: bool = False
    manual_evidence: bool = False
    requires_card_suffix: bool = False
    min_amount: float = DEFAULT_MIN_AMOUNT
    validate: Callable[[float], None] = field(default=_no_extra_check, compare=False, repr=False)


DEFAULT_POLICIES: Dict[Method, MethodPolicy] = {
    Method.ALIPAY: MethodPolicy(sticky=True),
    Method.WECHAT: MethodPolicy(sticky=True),
    Method.BANK_CARD: MethodPolicy(manual_evidence=True, requires_card_suffix=True),
    Method.USDT: MethodPolicy(),
}

_OVERRIDABLE = ("sticky", "manual_evidence", "requires_card_suffix", "min_amount")


class MethodRegistry:
    """Resolves method ids to policies and validates requested amounts."""

    def __init__(
        self,
        policies: Optional[Mapping[Method, MethodPolicy]] = None,
        overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
        min_amount: Optional[float] = None,
    ) -> None:
        base = dict(policies or DEFAULT_POLICIES)
        if min_amount is not None:
            base = {m: replace(p, min_amount=float(min_amount)) for m, p in base.items()}
        for key, values in (overrides or {}).items():
            method = Method.parse(key)
            changes = {k: v for k, v in values.items() if k in _OVERRIDABLE}
            if "min_amount" in changes:
                value = to_float_safe(changes["min_amount"])
                if value is None or not value > 0:
                    raise ValidationError(
                        f"invalid min_amount override for {method.value}: {changes['min_amount']!r}",
                        field="min_amount",
                    )
                changes["min_amount"] = value
            base[method] = replace(base.get(method, MethodPolicy()), **changes)
        self._policies = base

    def policy(self, method: Method | str) -> MethodPolicy:
        m = Method.parse(method)
        try:
            return self._policies[m]
        except KeyError:
            raise ValidationError(f"no policy for method {m.value}", field="method") from None

    def methods(self) -> Iterable[Method]:
        return self._policies.keys()

    def validate(self, method: Method | str, amount: Any) -> tuple[Method, float]:
        """
        Validate a (method, amount) request before any network call.

        Returns the parsed method and amount; raises ValidationError otherwise.
        """
        if method is None or method == "":
            raise ValidationError("select a payment method", field="method")
        m = Method.parse(method)
        policy = self.policy(m)
        value = to_float_safe(amount)
        if value is None or math.isnan(value) or math.isinf(value):
            raise ValidationError(f"invalid amount: {amount!r}", field="amount")
        if value < policy.min_amount:
            raise ValidationError(
                f"minimum amount is {policy.min_amount:g}", field="amount"
            )
        policy.validate(value)
        return m, value
