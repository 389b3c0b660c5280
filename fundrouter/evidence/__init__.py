"""
Evidence package: proof-of-payment uploads for manual settlement.
"""

from fundrouter.evidence.previews import PreviewRegistry
from fundrouter.evidence.upload_coordinator import (
    EvidenceUploadCoordinator,
    AddFilesResult,
    ALLOWED_CONTENT_TYPES,
    DEFAULT_MAX_BYTES,
    DEFAULT_MAX_COUNT,
)

__all__ = [
    "PreviewRegistry",
    "EvidenceUploadCoordinator",
    "AddFilesResult",
    "ALLOWED_CONTENT_TYPES",
    "DEFAULT_MAX_BYTES",
    "DEFAULT_MAX_COUNT",
]
