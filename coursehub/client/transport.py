"""HTTP transport streaming queue items to ``POST /api/videos/upload``."""

from __future__ import annotations

import logging
import os
from typing import Any, BinaryIO, Callable, Dict, Optional

import httpx

from ..errors import TransferError
from ..services.progress import percent_of
from .upload_queue import UploadItem

LOGGER = logging.getLogger(__name__)

UPLOAD_ENDPOINT = "/api/videos/upload"


class _ProgressReader:
    """File wrapper reporting the share of bytes handed to httpx."""

    def __init__(self, handle: BinaryIO, total: int, on_progress: Callable[[float], None]) -> None:
        self._handle = handle
        self._total = total
        self._on_progress = on_progress
        self._position = 0

    def read(self, size: int = -1) -> bytes:
        chunk = self._handle.read(size)
        self._position += len(chunk)
        if not chunk:
            # An empty payload is fully delivered once EOF is reached.
            if self._total == 0:
                self._on_progress(100)
            return chunk
        percent = percent_of(self._position, self._total)
        if percent is not None:
            self._on_progress(percent)
        return chunk

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        self._position = self._handle.seek(offset, whence)
        return self._position

    def tell(self) -> int:
        return self._handle.tell()

    def close(self) -> None:
        self._handle.close()


class HttpUploadTransport:
    """Upload transport for :class:`~coursehub.client.upload_queue.UploadQueue`."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str],
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._client = client
        self._timeout = timeout

    def _headers(self) -> Dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    async def upload(self, item: UploadItem, on_progress: Callable[[float], None]) -> Optional[Dict[str, Any]]:
        source = item.payload
        total = source.size
        handle = source.open()
        reader = _ProgressReader(handle, total, on_progress)
        files = {"video": (source.filename, reader, source.mime_type)}
        data = {
            "course_id": str(item.course_id),
            "title": item.title,
            "description": item.description,
        }
        url = f"{self._base_url}{UPLOAD_ENDPOINT}"
        LOGGER.debug("Uploading %s (%s bytes) to %s", source.filename, total, url)
        try:
            if self._client is not None:
                response = await self._client.post(url, data=data, files=files, headers=self._headers())
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, data=data, files=files, headers=self._headers())
        except httpx.HTTPError as exc:
            raise TransferError(f"Upload failed: {exc}") from exc
        finally:
            reader.close()

        return self._parse_response(response)

    @staticmethod
    def _parse_response(response: httpx.Response) -> Optional[Dict[str, Any]]:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if response.is_error or not body.get("success"):
            message = body.get("message") or f"Upload failed with HTTP {response.status_code}"
            raise TransferError(str(message))
        return body.get("data")


__all__ = ["HttpUploadTransport", "UPLOAD_ENDPOINT"]
