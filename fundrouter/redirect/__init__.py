"""
Redirect package: hosted payment page lifecycle.
"""

from fundrouter.redirect.confirmation_flow import (
    RedirectConfirmationFlow,
    FlowState,
    DEFAULT_CONFIRM_REMARK,
    DEFAULT_TIMEOUT_SEC,
)
from fundrouter.redirect.surface import RedirectSurface, ConsoleSurface

__all__ = [
    "RedirectConfirmationFlow",
    "FlowState",
    "DEFAULT_CONFIRM_REMARK",
    "DEFAULT_TIMEOUT_SEC",
    "RedirectSurface",
    "ConsoleSurface",
]
