"""Load per-method policy overrides from YAML.

Optional file path via env `FR_METHOD_CONFIG`, default `configs/methods.yaml`.
Returns a dict mapping method id -> dict of overrides, e.g.

    wechat:
      sticky: false
    usdt:
      min_amount: 500
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

log = logging.getLogger("fundrouter")


def load_method_overrides(path: str | None = None) -> Dict[str, Dict[str, Any]]:
    if path is None:
        path = os.getenv("FR_METHOD_CONFIG", "configs/methods.yaml")
    p = Path(path)
    if not p.exists():
        return {}
    try:
        with p.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as e:
        log.warning("method config unreadable path=%s error=%s", p, e)
        return {}
    if not isinstance(data, dict):
        return {}
    return {str(k): v for k, v in data.items() if isinstance(v, dict)}
