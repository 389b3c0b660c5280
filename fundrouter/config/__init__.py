"""
Configuration package.
"""

from fundrouter.config.config import Settings, env_bool, env_list
from fundrouter.config.config_validator import (
    ConfigValidator,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
    validate_and_log,
    validate_config,
)
from fundrouter.config.method_config import load_method_overrides

__all__ = [
    "Settings",
    "env_bool",
    "env_list",
    "ConfigValidator",
    "ValidationIssue",
    "ValidationResult",
    "ValidationSeverity",
    "validate_and_log",
    "validate_config",
    "load_method_overrides",
]
