"""
Configuration validation for startup safety.

- Range checks for numeric parameters
- Required fields
- Warnings for configurations that work but are probably unintended
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

logger = logging.getLogger("fundrouter")


class ValidationSeverity(Enum):
    ERROR = auto()    # Blocks startup
    WARNING = auto()  # Logged, startup continues
    INFO = auto()


@dataclass
class ValidationIssue:
    field: str
    message: str
    severity: ValidationSeverity
    value: Any = None
    suggestion: Optional[str] = None


@dataclass
class ValidationResult:
    valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)

    def has_errors(self) -> bool:
        return any(i.severity == ValidationSeverity.ERROR for i in self.issues)

    def has_warnings(self) -> bool:
        return any(i.severity == ValidationSeverity.WARNING for i in self.issues)

    def get_errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    def get_warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]


class ConfigValidator:
    """
    Validates Settings beyond the hard checks in Settings._validate.
    """

    # (min, max)
    NUMERIC_RANGES: Dict[str, Tuple[float, float]] = {
        "http_timeout": (1.0, 120.0),
        "http_retries": (0, 5),
        "min_amount": (1.0, 1_000_000.0),
        "max_retries": (1, 20),
        "retry_delay_sec": (0.0, 10.0),
        "evidence_max_count": (1, 20),
        "evidence_max_bytes": (1024, 50 * 1024 * 1024),
        "redirect_timeout_sec": (10.0, 3600.0),
        "metrics_port": (0, 65535),
    }

    REQUIRED_STRINGS: List[str] = [
        "base_url",
        "confirm_remark",
    ]

    def __init__(self) -> None:
        self._custom_validators: List[Callable[[Any], List[ValidationIssue]]] = []

    def register_validator(self, validator: Callable[[Any], List[ValidationIssue]]) -> None:
        self._custom_validators.append(validator)

    def validate(self, cfg) -> ValidationResult:
        issues: List[ValidationIssue] = []
        issues.extend(self._validate_required_strings(cfg))
        issues.extend(self._validate_numeric_ranges(cfg))
        issues.extend(self._validate_base_url(cfg))
        issues.extend(self._check_risky_configs(cfg))
        for validator in self._custom_validators:
            issues.extend(validator(cfg) or [])

        has_errors = any(i.severity == ValidationSeverity.ERROR for i in issues)
        return ValidationResult(valid=not has_errors, issues=issues)

    def _validate_required_strings(self, cfg) -> List[ValidationIssue]:
        issues = []
        for field_name in self.REQUIRED_STRINGS:
            value = getattr(cfg, field_name, None)
            if not value or (isinstance(value, str) and not value.strip()):
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"Required field '{field_name}' is missing or empty",
                    severity=ValidationSeverity.ERROR,
                    value=value,
                ))
        return issues

    def _validate_numeric_ranges(self, cfg) -> List[ValidationIssue]:
        issues = []
        for field_name, (min_val, max_val) in self.NUMERIC_RANGES.items():
            value = getattr(cfg, field_name, None)
            try:
                num_value = float(value)
            except (TypeError, ValueError):
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' has invalid numeric value: {value}",
                    severity=ValidationSeverity.ERROR,
                    value=value,
                ))
                continue
            if num_value < min_val:
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' value {num_value:g} is below minimum {min_val:g}",
                    severity=ValidationSeverity.ERROR,
                    value=num_value,
                    suggestion=f"Set to at least {min_val:g}",
                ))
            elif num_value > max_val:
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' value {num_value:g} is above maximum {max_val:g}",
                    severity=ValidationSeverity.ERROR,
                    value=num_value,
                    suggestion=f"Set to at most {max_val:g}",
                ))
        return issues

    def _validate_base_url(self, cfg) -> List[ValidationIssue]:
        url = getattr(cfg, "base_url", "") or ""
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return [ValidationIssue(
                field="base_url",
                message=f"base_url is not an http(s) URL: {url!r}",
                severity=ValidationSeverity.ERROR,
                value=url,
            )]
        return []

    def _check_risky_configs(self, cfg) -> List[ValidationIssue]:
        issues = []

        if not getattr(cfg, "api_token", None):
            issues.append(ValidationIssue(
                field="api_token",
                message="No API token configured; authenticated endpoints will answer 303",
                severity=ValidationSeverity.WARNING,
                suggestion="Set FR_API_TOKEN",
            ))

        if not getattr(cfg, "retryable_patterns", ()) and not getattr(cfg, "retryable_codes", ()):
            issues.append(ValidationIssue(
                field="retryable_patterns",
                message="No retryable patterns or codes; every backend error fails the match on the first channel",
                severity=ValidationSeverity.WARNING,
            ))

        delay = getattr(cfg, "retry_delay_sec", 0.5)
        if delay == 0:
            issues.append(ValidationIssue(
                field="retry_delay_sec",
                message="Zero retry delay sends failover attempts back to back",
                severity=ValidationSeverity.WARNING,
                value=delay,
            ))

        base_url = getattr(cfg, "base_url", "") or ""
        if base_url.startswith("http://") and getattr(cfg, "api_token", None):
            host = urlparse(base_url).hostname or ""
            if host not in ("127.0.0.1", "localhost"):
                issues.append(ValidationIssue(
                    field="base_url",
                    message="API token would be sent over plain http",
                    severity=ValidationSeverity.WARNING,
                    suggestion="Use an https base_url",
                ))
        return issues


def validate_config(cfg) -> ValidationResult:
    return ConfigValidator().validate(cfg)


def validate_and_log(cfg, logger_instance=None) -> bool:
    """
    Validate config and log all issues.

    Returns:
        True if config is valid (no errors), False otherwise
    """
    log = logger_instance or logger
    result = validate_config(cfg)

    for issue in result.get_errors():
        msg = f"CONFIG ERROR: {issue.message}"
        if issue.suggestion:
            msg += f" (suggestion: {issue.suggestion})"
        log.error(msg)

    for issue in result.get_warnings():
        msg = f"CONFIG WARNING: {issue.message}"
        if issue.suggestion:
            msg += f" (suggestion: {issue.suggestion})"
        log.warning(msg)

    if result.valid:
        log.info("Configuration validation passed")
    else:
        log.error(f"Configuration validation failed with {len(result.get_errors())} error(s)")
    return result.valid
