"""
EvidenceUploadCoordinator: concurrent proof-of-payment uploads.

Each accepted file becomes an EvidenceItem with its own upload task. Tasks
are tracked by item id, so removing or resetting items while uploads are in
flight simply makes the late result undeliverable: a finished task whose
item is gone is discarded.

Preview handles are released exactly once: when the remote URL is
confirmed, when the item is removed, or on reset.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Protocol,
    Tuple,
    TYPE_CHECKING,
)

from fundrouter.core.errors import UploadError
from fundrouter.core.json_utils import dumps
from fundrouter.core.models import EvidenceFile, EvidenceItem, EvidenceStatus
from fundrouter.evidence.previews import PreviewRegistry

if TYPE_CHECKING:
    from fundrouter.monitoring.metrics import EngineMetrics

log = logging.getLogger("fundrouter")

DEFAULT_MAX_COUNT = 8
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
ALLOWED_CONTENT_TYPES: FrozenSet[str] = frozenset({"image/jpeg", "image/png", "image/gif"})


class Uploader(Protocol):
    async def upload(self, file: EvidenceFile) -> str: ...


@dataclass
class AddFilesResult:
    """Outcome of one file selection."""
    accepted: List[EvidenceItem] = field(default_factory=list)
    rejected: List[Tuple[EvidenceFile, str]] = field(default_factory=list)
    truncated: int = 0

    @property
    def limit_exceeded(self) -> bool:
        return self.truncated > 0


class EvidenceUploadCoordinator:
    def __init__(
        self,
        uploader: Uploader,
        max_count: int = DEFAULT_MAX_COUNT,
        max_bytes: int = DEFAULT_MAX_BYTES,
        allowed_types: Iterable[str] = ALLOWED_CONTENT_TYPES,
        evidence: Optional[List[str]] = None,
        previews: Optional[PreviewRegistry] = None,
        on_limit_exceeded: Optional[Callable[[int, int], None]] = None,
        metrics: Optional["EngineMetrics"] = None,
        log_event: Optional[Callable[..., None]] = None,
    ) -> None:
        """
        Args:
            uploader: Anything with `async upload(file) -> url`
            max_count: Maximum evidence images per order
            max_bytes: Per-file size cap
            allowed_types: Accepted MIME types
            evidence: Order evidence list to append confirmed URLs to
            previews: Preview handle registry
            on_limit_exceeded: Called as (max_count, dropped) once per truncated batch
            metrics: Optional Prometheus metrics
            log_event: Callback for structured logging
        """
        self.uploader = uploader
        self.max_count = max_count
        self.max_bytes = max_bytes
        self.allowed_types = frozenset(allowed_types)
        self.evidence: List[str] = evidence if evidence is not None else []
        self.previews = previews or PreviewRegistry()
        self._on_limit_exceeded = on_limit_exceeded
        self.metrics = metrics
        self._log_event = log_event or self._default_log

        self._items: Dict[str, EvidenceItem] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def _default_log(self, event: str, **kwargs: Any) -> None:
        log.info(dumps({"event": event, **kwargs}))

    @property
    def items(self) -> List[EvidenceItem]:
        return list(self._items.values())

    @property
    def uploaded_urls(self) -> List[str]:
        return list(self.evidence)

    @property
    def in_flight(self) -> int:
        return sum(1 for t in self._tasks.values() if not t.done())

    @property
    def remaining_slots(self) -> int:
        pending = sum(
            1 for it in self._items.values()
            if it.status in (EvidenceStatus.QUEUED, EvidenceStatus.UPLOADING)
        )
        return max(0, self.max_count - len(self.evidence) - pending)

    def check_file(self, file: EvidenceFile) -> Optional[str]:
        """Return a rejection reason, or None if the file may be uploaded."""
        if file.content_type not in self.allowed_types:
            return "unsupported_type"
        if file.size == 0:
            return "empty"
        if file.size > self.max_bytes:
            return "too_large"
        return None

    def add_files(self, files: Iterable[EvidenceFile]) -> AddFilesResult:
        """
        Accept a batch of selected files and start their uploads.

        Must be called with a running event loop. Invalid files are rejected
        without consuming a slot; valid files beyond the remaining slots are
        dropped with a single limit-exceeded signal.
        """
        result = AddFilesResult()
        valid: List[EvidenceFile] = []
        for f in files:
            reason = self.check_file(f)
            if reason:
                result.rejected.append((f, reason))
                if self.metrics:
                    self.metrics.evidence_rejected.labels(reason=reason).inc()
                self._log_event("evidence_rejected", name=f.name, reason=reason, size=f.size)
            else:
                valid.append(f)

        slots = self.remaining_slots
        accepted_files = valid[:slots]
        result.truncated = len(valid) - len(accepted_files)
        if result.truncated:
            self._log_event(
                "evidence_limit_exceeded",
                max_count=self.max_count,
                dropped=result.truncated,
            )
            if self._on_limit_exceeded:
                self._on_limit_exceeded(self.max_count, result.truncated)

        for f in accepted_files:
            item = EvidenceItem(file=f, preview=self.previews.create(f), status=EvidenceStatus.UPLOADING)
            self._items[item.item_id] = item
            self._tasks[item.item_id] = asyncio.create_task(self._upload(item))
            result.accepted.append(item)
        return result

    async def upload_files(self, files: Iterable[EvidenceFile]) -> AddFilesResult:
        """add_files, then wait for that batch to settle."""
        result = self.add_files(files)
        tasks = [self._tasks[it.item_id] for it in result.accepted if it.item_id in self._tasks]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return result

    async def _upload(self, item: EvidenceItem) -> None:
        if self.metrics:
            self.metrics.evidence_in_flight.inc()
        try:
            url = await self.uploader.upload(item.file)
        except Exception as exc:
            if isinstance(exc, UploadError):
                error = exc
            else:
                error = UploadError(str(exc) or type(exc).__name__, item_id=item.item_id)
            self._settle_failure(item, error)
            return
        finally:
            if self.metrics:
                self.metrics.evidence_in_flight.dec()
        self._settle_success(item, url)

    def _is_current(self, item: EvidenceItem) -> bool:
        return self._items.get(item.item_id) is item

    def _settle_success(self, item: EvidenceItem, url: str) -> None:
        if not self._is_current(item):
            self._log_event("evidence_result_discarded", item=item.item_id, result="uploaded")
            return
        item.status = EvidenceStatus.UPLOADED
        item.remote_url = url
        self.evidence.append(url)
        self._release_preview(item)
        if self.metrics:
            self.metrics.evidence_uploads.labels(result="uploaded").inc()
        self._log_event("evidence_uploaded", item=item.item_id, name=item.file.name)

    def _settle_failure(self, item: EvidenceItem, error: UploadError) -> None:
        if not self._is_current(item):
            self._log_event("evidence_result_discarded", item=item.item_id, result="failed")
            return
        item.status = EvidenceStatus.FAILED
        item.error = str(error)
        if self.metrics:
            self.metrics.evidence_uploads.labels(result="failed").inc()
        self._log_event("evidence_upload_failed", item=item.item_id, name=item.file.name, error=str(error))

    def _release_preview(self, item: EvidenceItem) -> None:
        if item.preview_released:
            return
        self.previews.release(item.preview)
        item.preview_released = True

    async def wait_all(self) -> List[EvidenceItem]:
        """Wait for every in-flight upload. Individual failures never raise here."""
        pending = [t for t in self._tasks.values() if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return self.items

    def remove_item(self, idx: int) -> Optional[EvidenceItem]:
        """Remove the item at display position idx."""
        items = self.items
        if idx < 0 or idx >= len(items):
            return None
        return self.remove_by_id(items[idx].item_id)

    def remove_by_id(self, item_id: str) -> Optional[EvidenceItem]:
        """
        Drop an item. Its preview is released if still held, and its URL, if
        confirmed, is retracted from the evidence list. An upload still in
        flight is left to finish; its result is discarded.
        """
        item = self._items.pop(item_id, None)
        if item is None:
            return None
        self._tasks.pop(item_id, None)
        self._release_preview(item)
        if item.remote_url and item.remote_url in self.evidence:
            self.evidence.remove(item.remote_url)
        self._log_event("evidence_removed", item=item_id, status=item.status.name)
        return item

    def reset(self) -> None:
        """Release every outstanding preview, cancel uploads and clear evidence."""
        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        for item in self._items.values():
            self._release_preview(item)
        self._items.clear()
        self._tasks.clear()
        self.evidence.clear()
