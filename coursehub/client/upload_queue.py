"""Sequential upload queue feeding videos to the CourseHub API one at a time."""

from __future__ import annotations

import asyncio
import contextlib
import io
import itertools
import logging
import mimetypes
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import (
    Any,
    BinaryIO,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
)

from ..errors import TransferError, ValidationError
from ..services.events import emit_task_event
from ..services.naming import title_from_filename
from ..services.progress import clamp_transfer_progress

LOGGER = logging.getLogger(__name__)


class UploadStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


_TERMINAL = {UploadStatus.COMPLETED, UploadStatus.ERROR}


@dataclass
class UploadSource:
    """File content handed to the queue: in-memory bytes or a path on disk."""

    filename: str
    mime_type: Optional[str] = None
    data: Optional[bytes] = None
    path: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.data is None and self.path is None:
            raise ValidationError(f"No content supplied for {self.filename!r}")
        if self.mime_type is None:
            self.mime_type = mimetypes.guess_type(self.filename)[0] or "application/octet-stream"

    @classmethod
    def from_path(cls, path: Path | str, mime_type: Optional[str] = None) -> "UploadSource":
        resolved = Path(path)
        if not resolved.is_file():
            raise ValidationError(f"{resolved} is not a file")
        return cls(filename=resolved.name, mime_type=mime_type, path=resolved)

    @property
    def size(self) -> int:
        if self.data is not None:
            return len(self.data)
        assert self.path is not None
        return self.path.stat().st_size

    def open(self) -> BinaryIO:
        if self.data is not None:
            return io.BytesIO(self.data)
        assert self.path is not None
        return self.path.open("rb")


@dataclass
class UploadItem:
    id: str
    payload: UploadSource
    course_id: int
    title: str
    description: str = ""
    status: UploadStatus = UploadStatus.PENDING
    progress: int = 0
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    sequence: int = 0
    result: Optional[Dict[str, Any]] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL

    def mark_uploading(self) -> None:
        self.status = UploadStatus.UPLOADING
        self.progress = 0
        self.error = None

    def mark_processing(self) -> None:
        self.status = UploadStatus.PROCESSING
        self.progress = 100

    def mark_completed(self, result: Optional[Dict[str, Any]]) -> None:
        self.status = UploadStatus.COMPLETED
        self.progress = 100
        self.result = result

    def mark_failed(self, message: str) -> None:
        self.status = UploadStatus.ERROR
        self.error = message


@dataclass(frozen=True)
class QueueStats:
    pending: int = 0
    uploading: int = 0
    processing: int = 0
    completed: int = 0
    error: int = 0
    active: int = 0
    total: int = 0


ProgressCallback = Callable[[float], None]
CompletionCallback = Callable[[Optional[Dict[str, Any]]], None]
UpdateCallback = Callable[[Optional[UploadItem]], None]


class UploadTransport(Protocol):
    async def upload(self, item: UploadItem, on_progress: ProgressCallback) -> Optional[Dict[str, Any]]:
        """Send *item* and return the persisted video, reporting progress 0-100."""


class CompletionSubscription:
    """Handle returned by :meth:`UploadQueue.register_completion_observer`."""

    def __init__(self, queue: "UploadQueue", callback: CompletionCallback) -> None:
        self._queue = queue
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    @property
    def callback(self) -> CompletionCallback:
        return self._callback

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._queue._release_subscription(self)

    def __enter__(self) -> "CompletionSubscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe()


class UploadQueue:
    """FIFO queue that uploads one item at a time through a transport."""

    def __init__(
        self,
        transport: UploadTransport,
        *,
        on_update: Optional[UpdateCallback] = None,
    ) -> None:
        self._transport = transport
        self._on_update = on_update
        self._items: List[UploadItem] = []
        self._sequence = itertools.count()
        self._worker: Optional[asyncio.Task[None]] = None
        self._subscription: Optional[CompletionSubscription] = None

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------
    @property
    def items(self) -> List[UploadItem]:
        return list(self._items)

    @property
    def is_processing(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def get_item(self, item_id: str) -> Optional[UploadItem]:
        return next((item for item in self._items if item.id == item_id), None)

    def get_stats(self) -> QueueStats:
        counts = {status: 0 for status in UploadStatus}
        for item in self._items:
            counts[item.status] += 1
        uploading = counts[UploadStatus.UPLOADING]
        processing = counts[UploadStatus.PROCESSING]
        return QueueStats(
            pending=counts[UploadStatus.PENDING],
            uploading=uploading,
            processing=processing,
            completed=counts[UploadStatus.COMPLETED],
            error=counts[UploadStatus.ERROR],
            active=uploading + processing,
            total=len(self._items),
        )

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def enqueue(
        self,
        files: Iterable[UploadSource],
        course_id: int,
        default_titles: Optional[Sequence[Optional[str]]] = None,
    ) -> int:
        """Append one pending item per file and make sure the worker runs.

        Must be called while an event loop is running.
        """

        sources = list(files)
        if not sources:
            raise ValidationError("At least one file is required")
        loop = asyncio.get_running_loop()
        titles = list(default_titles or [])

        for index, source in enumerate(sources):
            supplied = titles[index] if index < len(titles) else None
            title = (supplied or "").strip() or title_from_filename(source.filename)
            item = UploadItem(
                id=uuid.uuid4().hex,
                payload=source,
                course_id=course_id,
                title=title,
                sequence=next(self._sequence),
            )
            self._items.append(item)
            emit_task_event(
                "upload_queued",
                payload={"item_id": item.id, "course_id": course_id, "filename": source.filename},
                level=logging.DEBUG,
            )
        LOGGER.debug("Queued %s uploads for course_id=%s", len(sources), course_id)
        self._notify_update(None)
        self._ensure_worker(loop)
        return len(sources)

    def remove_item(self, item_id: str) -> bool:
        """Drop an item from the queue; an in-flight transfer keeps running unobserved."""

        item = self.get_item(item_id)
        if item is None:
            return False
        self._items.remove(item)
        emit_task_event(
            "upload_removed",
            payload={"item_id": item_id, "status": item.status},
            level=logging.DEBUG,
        )
        self._notify_update(None)
        return True

    def clear_completed(self) -> int:
        kept = [item for item in self._items if not item.is_terminal]
        removed = len(self._items) - len(kept)
        self._items = kept
        if removed:
            LOGGER.debug("Cleared %s finished uploads", removed)
            self._notify_update(None)
        return removed

    def register_completion_observer(self, callback: CompletionCallback) -> CompletionSubscription:
        if self._subscription is not None and self._subscription.active:
            raise RuntimeError("A completion observer is already registered")
        subscription = CompletionSubscription(self, callback)
        self._subscription = subscription
        return subscription

    def _release_subscription(self, subscription: CompletionSubscription) -> None:
        if self._subscription is subscription:
            self._subscription = None

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    async def join(self) -> None:
        """Wait until no pending item remains and the worker went idle."""

        while self._worker is not None and not self._worker.done():
            await asyncio.wait({self._worker})

    async def close(self) -> None:
        worker = self._worker
        self._worker = None
        if worker is not None and not worker.done():
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker

    def _ensure_worker(self, loop: asyncio.AbstractEventLoop) -> None:
        if self.is_processing:
            return
        self._worker = loop.create_task(self._run(), name="upload-queue-worker")

    def _next_pending(self) -> Optional[UploadItem]:
        pending = [item for item in self._items if item.status is UploadStatus.PENDING]
        if not pending:
            return None
        return min(pending, key=lambda item: item.sequence)

    async def _run(self) -> None:
        while True:
            item = self._next_pending()
            if item is None:
                LOGGER.debug("Upload queue idle")
                return
            await self._process(item)

    async def _process(self, item: UploadItem) -> None:
        item.mark_uploading()
        started = time.perf_counter()
        emit_task_event(
            "upload_started",
            payload={"item_id": item.id, "course_id": item.course_id, "title": item.title},
        )
        self._notify_update(item)

        def _on_progress(value: float) -> None:
            if item.status is not UploadStatus.UPLOADING:
                return
            try:
                reached_end = float(value) >= 100
            except (TypeError, ValueError):
                return
            if reached_end:
                item.mark_processing()
                emit_task_event("upload_processing", payload={"item_id": item.id}, level=logging.DEBUG)
            else:
                item.progress = clamp_transfer_progress(value)
            self._notify_update(item)

        try:
            result = await self._transport.upload(item, _on_progress)
        except asyncio.CancelledError:
            item.mark_failed("Upload cancelled")
            self._notify_update(item)
            raise
        except TransferError as exc:
            item.mark_failed(str(exc) or "Upload failed")
            LOGGER.warning("Upload of %s failed: %s", item.title, item.error)
        except Exception as exc:
            item.mark_failed(str(exc) or "Upload failed")
            LOGGER.exception("Unexpected failure uploading %s", item.title)
        else:
            item.mark_completed(result)
        duration_ms = (time.perf_counter() - started) * 1000.0
        emit_task_event(
            "upload_finished",
            payload={"item_id": item.id, "status": item.status, "error": item.error},
            duration_ms=duration_ms,
            level=logging.INFO if item.status is UploadStatus.COMPLETED else logging.WARNING,
        )
        self._notify_update(item)
        if item.status is UploadStatus.COMPLETED:
            self._notify_completion(item)

    def _notify_completion(self, item: UploadItem) -> None:
        if not any(entry is item for entry in self._items):
            LOGGER.debug("Upload %s was removed while in flight; skipping observer", item.id)
            return
        subscription = self._subscription
        if subscription is None or not subscription.active:
            return
        try:
            subscription.callback(item.result)
        except Exception:
            LOGGER.exception("Completion observer raised for upload %s", item.id)

    def _notify_update(self, item: Optional[UploadItem]) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(item)
        except Exception:
            LOGGER.exception("Upload update callback raised")


__all__ = [
    "CompletionSubscription",
    "QueueStats",
    "UploadItem",
    "UploadQueue",
    "UploadSource",
    "UploadStatus",
    "UploadTransport",
]
