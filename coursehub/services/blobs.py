"""Blob storage for uploaded videos, notes and thumbnails."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import AppConfig
from ..errors import StoreError
from .events import emit_file_event
from .naming import build_blob_key

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredBlob:
    key: str
    url: str


class BlobStore(Protocol):
    def upload(
        self,
        source: BinaryIO,
        filename: str,
        mime_type: Optional[str],
        folder: str = "videos",
    ) -> StoredBlob: ...

    def delete(self, key: str) -> bool: ...

    def url_for(self, key: str) -> str: ...


class LocalBlobStore:
    """Store blobs below a directory that the API serves under ``/storage``."""

    def __init__(self, root: Path, base_url: str = "/storage/uploads") -> None:
        self._root = Path(root).resolve()
        self._base_url = base_url.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, key: str) -> Path:
        candidate = (self._root / key).resolve()
        try:
            candidate.relative_to(self._root)
        except ValueError as exc:
            raise StoreError(f"Blob key escapes the storage root: {key}") from exc
        return candidate

    def upload(
        self,
        source: BinaryIO,
        filename: str,
        mime_type: Optional[str],
        folder: str = "videos",
    ) -> StoredBlob:
        key = build_blob_key(folder, filename)
        target = self._path_for(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("wb") as handle:
                shutil.copyfileobj(source, handle, length=1024 * 1024)
        except OSError as exc:
            raise StoreError(f"Unable to store {filename}: {exc}") from exc
        emit_file_event(
            "blob_stored",
            payload={"key": key, "bytes": target.stat().st_size, "mime_type": mime_type},
        )
        return StoredBlob(key=key, url=self.url_for(key))

    def delete(self, key: str) -> bool:
        target = self._path_for(key)
        if not target.exists():
            LOGGER.debug("Blob %s already absent", key)
            return False
        try:
            target.unlink()
        except OSError as exc:
            raise StoreError(f"Unable to delete blob {key}: {exc}") from exc
        emit_file_event("blob_deleted", payload={"key": key})
        return True

    def url_for(self, key: str) -> str:
        return f"{self._base_url}/{key}"


class S3BlobStore:
    """Store blobs in a public-read S3 bucket."""

    def __init__(self, bucket: str, region: str, client: Any = None) -> None:
        if not bucket:
            raise ValueError("An S3 bucket name is required")
        self._bucket = bucket
        self._region = region
        self._client = client if client is not None else boto3.client("s3", region_name=region)
        LOGGER.info("S3 blob store initialised for bucket %s (%s)", bucket, region)

    def upload(
        self,
        source: BinaryIO,
        filename: str,
        mime_type: Optional[str],
        folder: str = "videos",
    ) -> StoredBlob:
        key = build_blob_key(folder, filename)
        extra_args = {"ContentType": mime_type} if mime_type else {}
        try:
            self._client.upload_fileobj(source, self._bucket, key, ExtraArgs=extra_args)
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Unable to upload {filename} to S3: {exc}") from exc
        emit_file_event(
            "blob_stored",
            payload={"key": key, "bucket": self._bucket, "mime_type": mime_type},
        )
        return StoredBlob(key=key, url=self.url_for(key))

    def delete(self, key: str) -> bool:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Unable to delete {key} from S3: {exc}") from exc
        emit_file_event("blob_deleted", payload={"key": key, "bucket": self._bucket})
        return True

    def url_for(self, key: str) -> str:
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"


def build_blob_store(config: AppConfig) -> BlobStore:
    """Return the blob store selected by ``config.blob_backend``."""

    if config.blob_backend == "s3":
        if not config.s3_bucket:
            raise ValueError("blob_backend 's3' requires 's3_bucket' to be configured")
        return S3BlobStore(config.s3_bucket, config.s3_region)
    return LocalBlobStore(config.uploads_root)


def discard_blob(store: BlobStore, key: Optional[str], *, reason: str) -> bool:
    """Delete *key* without letting a failure reach the caller."""

    if not key:
        return False
    try:
        removed = store.delete(key)
    except Exception as exc:
        LOGGER.warning("Could not delete blob %s (%s): %s", key, reason, exc)
        emit_file_event(
            "blob_cleanup_failed",
            payload={"key": key, "reason": reason, "error": str(exc)},
            level=logging.WARNING,
        )
        return False
    LOGGER.debug("Discarded blob %s (%s, removed=%s)", key, reason, removed)
    return removed


__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "StoredBlob",
    "build_blob_store",
    "discard_blob",
]
