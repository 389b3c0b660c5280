"""
Environment-driven configuration with validation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv

from fundrouter.execution.retry_policy import DEFAULT_RETRYABLE_PATTERNS
from fundrouter.redirect.confirmation_flow import DEFAULT_CONFIRM_REMARK


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None or val == "":
        return default
    return val.lower() in {"1", "true", "yes", "y"}


def env_list(key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(key)
    if raw is None:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    base_url: str
    api_token: str | None
    http_timeout: float
    http_retries: int
    min_amount: float
    max_retries: int
    retry_delay_sec: float
    retryable_patterns: Tuple[str, ...]
    retryable_codes: Tuple[int, ...]
    network_errors_retryable: bool
    evidence_max_count: int
    evidence_max_bytes: int
    redirect_timeout_sec: float
    confirm_remark: str
    method_config_path: str
    log_level: str
    log_file: str | None
    metrics_port: int  # 0 disables the exporter

    def dump(self) -> dict:
        """Return a dict of settings for logging, with the token masked."""
        data = self.__dict__.copy()
        if data.get("api_token"):
            data["api_token"] = "***"
        return data

    @classmethod
    def load(cls, use_dotenv: bool = True) -> "Settings":
        if use_dotenv:
            load_dotenv()

        def _int_env(key: str, default: int) -> int:
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            return int(raw)

        def _float_env(key: str, default: float) -> float:
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            return float(raw)

        cfg = cls(
            base_url=os.getenv("FR_BASE_URL", "http://127.0.0.1:8000/api"),
            api_token=os.getenv("FR_API_TOKEN") or None,
            http_timeout=_float_env("FR_HTTP_TIMEOUT", 10.0),
            http_retries=_int_env("FR_HTTP_RETRIES", 1),
            min_amount=_float_env("FR_MIN_AMOUNT", 100.0),
            max_retries=_int_env("FR_MAX_RETRIES", 3),
            retry_delay_sec=_float_env("FR_RETRY_DELAY_SEC", 0.5),
            retryable_patterns=env_list("FR_RETRYABLE_PATTERNS", DEFAULT_RETRYABLE_PATTERNS),
            retryable_codes=tuple(int(c) for c in env_list("FR_RETRYABLE_CODES", ())),
            network_errors_retryable=env_bool("FR_NETWORK_ERRORS_RETRYABLE", True),
            evidence_max_count=_int_env("FR_EVIDENCE_MAX_COUNT", 8),
            evidence_max_bytes=_int_env("FR_EVIDENCE_MAX_BYTES", 5 * 1024 * 1024),
            redirect_timeout_sec=_float_env("FR_REDIRECT_TIMEOUT_SEC", 300.0),
            confirm_remark=os.getenv("FR_CONFIRM_REMARK", DEFAULT_CONFIRM_REMARK),
            method_config_path=os.getenv("FR_METHOD_CONFIG", "configs/methods.yaml"),
            log_level=os.getenv("FR_LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("FR_LOG_FILE") or None,
            metrics_port=_int_env("FR_METRICS_PORT", 0),
        )
        cfg._validate()
        return cfg

    def _validate(self) -> None:
        if not self.base_url:
            raise ValueError("FR_BASE_URL must be set")
        if self.http_timeout <= 0:
            raise ValueError("FR_HTTP_TIMEOUT must be > 0")
        if self.http_retries < 0:
            raise ValueError("FR_HTTP_RETRIES must be >= 0")
        if self.min_amount <= 0:
            raise ValueError("FR_MIN_AMOUNT must be > 0")
        if self.max_retries <= 0:
            raise ValueError("FR_MAX_RETRIES must be > 0")
        if self.retry_delay_sec < 0:
            raise ValueError("FR_RETRY_DELAY_SEC must be >= 0")
        if self.evidence_max_count <= 0:
            raise ValueError("FR_EVIDENCE_MAX_COUNT must be > 0")
        if self.evidence_max_bytes <= 0:
            raise ValueError("FR_EVIDENCE_MAX_BYTES must be > 0")
        if self.redirect_timeout_sec <= 0:
            raise ValueError("FR_REDIRECT_TIMEOUT_SEC must be > 0")
        if self.metrics_port < 0:
            raise ValueError("FR_METRICS_PORT must be >= 0")
