"""
Local preview handles for selected evidence files.

A handle stands in for whatever the host renders a thumbnail from (object
URL, temp file, cache key). The registry guarantees each handle is released
at most once and reports what is still outstanding.
"""

from __future__ import annotations

import uuid
from typing import Callable, Dict, Optional, Set

from fundrouter.core.models import EvidenceFile


class PreviewRegistry:
    def __init__(self, on_release: Optional[Callable[[str], None]] = None) -> None:
        self._live: Dict[str, EvidenceFile] = {}
        self._on_release = on_release
        self.created = 0
        self.released = 0

    def create(self, file: EvidenceFile) -> str:
        handle = f"preview:{uuid.uuid4().hex}"
        self._live[handle] = file
        self.created += 1
        return handle

    def release(self, handle: Optional[str]) -> bool:
        """Release a handle. Returns False if it was unknown or already released."""
        if handle is None or self._live.pop(handle, None) is None:
            return False
        self.released += 1
        if self._on_release:
            self._on_release(handle)
        return True

    @property
    def outstanding(self) -> Set[str]:
        return set(self._live)
