"""
CandidatePool - eligible endpoint filtering and ordering.

Ordering rules:
- The filtered list is always Fisher-Yates shuffled first so ties in a later
  stable sort resolve randomly instead of by backend array position.
- Non-sticky methods: ascending sortWeight.
- Sticky methods, first match in the session: ascending sortWeight, then the
  session marker is set.
- Sticky methods, later matches: a second full shuffle, weight ignored.
"""

from __future__ import annotations

import logging
import random
from typing import Callable, List, Optional, Sequence

from fundrouter.core.errors import NoEligibleChannelError
from fundrouter.core.json_utils import dumps
from fundrouter.core.methods import Method, MethodRegistry
from fundrouter.core.models import Endpoint, SelectionSession
from fundrouter.matching.session_flags import SessionFlags

log = logging.getLogger("fundrouter")


def fisher_yates(items: List[Endpoint], rng: random.Random) -> List[Endpoint]:
    """In-place Fisher-Yates shuffle. Returns the same list."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


class CandidatePool:
    """
    Filters and orders endpoints for one (method, amount) request.

    The session flags are injected so sticky-selection state never lives in
    a module global.
    """

    def __init__(
        self,
        registry: MethodRegistry,
        flags: SessionFlags,
        rng: Optional[random.Random] = None,
        log_event: Optional[Callable[..., None]] = None,
    ) -> None:
        self.registry = registry
        self.flags = flags
        self._rng = rng or random.Random()
        self._log_event = log_event or self._default_log

    def _default_log(self, event: str, **kwargs) -> None:
        log.debug(dumps({"event": event, **kwargs}))

    @staticmethod
    def eligible(endpoints: Sequence[Endpoint], method: Method, amount: float) -> List[Endpoint]:
        return [ep for ep in endpoints if ep.method is method and ep.accepts(amount)]

    def select(self, endpoints: Sequence[Endpoint], method: Method, amount: float) -> SelectionSession:
        """
        Build a SelectionSession holding the ordered candidates.

        Raises:
            NoEligibleChannelError: nothing matches the method and amount.
        """
        policy = self.registry.policy(method)
        filtered = self.eligible(endpoints, method, amount)
        if not filtered:
            self._log_event("match_no_eligible", method=method.value, amount=amount, total=len(endpoints))
            raise NoEligibleChannelError(f"no eligible channel for {method.value} amount={amount:g}")

        fisher_yates(filtered, self._rng)
        matched_before = policy.sticky and self.flags.get(method)

        if policy.sticky and matched_before:
            ordered = fisher_yates(filtered, self._rng)
            mode = "random"
        else:
            # list.sort is stable, so equal weights keep their shuffled order.
            filtered.sort(key=lambda ep: ep.weight_key)
            ordered = filtered
            mode = "weighted"
            if policy.sticky:
                self.flags.set(method)

        self._log_event(
            "match_candidates",
            method=method.value,
            amount=amount,
            mode=mode,
            candidates=[ep.id for ep in ordered],
        )
        return SelectionSession(
            method=method,
            amount=amount,
            has_matched_before=bool(matched_before),
            candidates=ordered,
        )
