"""
Fast JSON utilities for structured event logging and wire payloads.

Usage:
    from fundrouter.core.json_utils import dumps, loads

    log.info(dumps({"event": "match_started", "method": "wechat"}))
"""

from __future__ import annotations

from typing import Any

import orjson


def dumps(obj: Any) -> str:
    """Encode to a compact JSON string. Unknown types fall back to str()."""
    return orjson.dumps(obj, default=str).decode("utf-8")


def dumps_bytes(obj: Any) -> bytes:
    return orjson.dumps(obj, default=str)


def loads(s: str | bytes) -> Any:
    return orjson.loads(s)
