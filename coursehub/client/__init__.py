"""Client-side upload queue and HTTP transport."""

from .transport import HttpUploadTransport
from .upload_queue import (
    CompletionSubscription,
    QueueStats,
    UploadItem,
    UploadQueue,
    UploadSource,
    UploadStatus,
)

__all__ = [
    "CompletionSubscription",
    "HttpUploadTransport",
    "QueueStats",
    "UploadItem",
    "UploadQueue",
    "UploadSource",
    "UploadStatus",
]
