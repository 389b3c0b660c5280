"""
Utility helpers.
"""

from __future__ import annotations

import re
import secrets
import time
from typing import Any, Optional, Tuple

# Backend remarks carry the accepted range as free text, e.g. "100-2000".
_RANGE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*-\s*(\d+(?:\.\d+)?)")


def now_ms() -> int:
    return int(time.time() * 1000)


def new_client_ref() -> str:
    return secrets.token_hex(16)


def to_float_safe(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_int_safe(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None


def parse_amount_range(text: Optional[str]) -> Optional[Tuple[float, float]]:
    """
    Extract an inclusive [min, max] amount range from free text.

    Returns None when the text carries no usable range.
    """
    if not text:
        return None
    match = _RANGE_RE.search(str(text))
    if not match:
        return None
    lo, hi = float(match.group(1)), float(match.group(2))
    return lo, hi


def mask_account(number: Optional[str], keep: int = 4) -> str:
    """Mask all but the last `keep` characters of an account number for logs."""
    if not number:
        return ""
    s = str(number)
    if len(s) <= keep:
        return s
    return "*" * (len(s) - keep) + s[-keep:]
