from __future__ import annotations

import dataclasses
import io
from typing import Any, Dict, List

import pytest
from botocore.exceptions import ClientError

from coursehub.errors import StoreError
from coursehub.services.blobs import LocalBlobStore, S3BlobStore, build_blob_store, discard_blob


class _FakeS3Client:
    def __init__(self, *, fail_delete: bool = False) -> None:
        self.uploads: List[Dict[str, Any]] = []
        self.deleted: List[str] = []
        self._fail_delete = fail_delete

    def upload_fileobj(self, source, bucket, key, ExtraArgs=None):  # noqa: N803 - boto3 signature
        self.uploads.append({"bucket": bucket, "key": key, "body": source.read(), "extra": ExtraArgs})

    def delete_object(self, Bucket, Key):  # noqa: N803 - boto3 signature
        if self._fail_delete:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DeleteObject")
        self.deleted.append(Key)


def test_local_store_writes_and_deletes(tmp_path) -> None:
    store = LocalBlobStore(tmp_path / "uploads")

    stored = store.upload(io.BytesIO(b"payload"), "Lecture 1.MP4", "video/mp4")

    assert stored.key.startswith("videos/")
    assert stored.key.endswith(".mp4")
    assert stored.url == f"/storage/uploads/{stored.key}"
    path = store.root / stored.key
    assert path.read_bytes() == b"payload"

    assert store.delete(stored.key) is True
    assert not path.exists()
    assert store.delete(stored.key) is False


def test_local_store_uses_folder_for_key(tmp_path) -> None:
    store = LocalBlobStore(tmp_path, base_url="/files/")

    stored = store.upload(io.BytesIO(b"%PDF"), "notes.pdf", "application/pdf", folder="notes")

    assert stored.key.startswith("notes/")
    assert stored.url.startswith("/files/notes/")


def test_local_store_rejects_escaping_keys(tmp_path) -> None:
    store = LocalBlobStore(tmp_path / "uploads")

    with pytest.raises(StoreError):
        store.delete("../outside.txt")


def test_s3_store_uploads_with_content_type() -> None:
    client = _FakeS3Client()
    store = S3BlobStore("course-media", "eu-west-1", client=client)

    stored = store.upload(io.BytesIO(b"bytes"), "intro.mp4", "video/mp4")

    assert client.uploads[0]["bucket"] == "course-media"
    assert client.uploads[0]["extra"] == {"ContentType": "video/mp4"}
    assert client.uploads[0]["body"] == b"bytes"
    assert stored.url == f"https://course-media.s3.eu-west-1.amazonaws.com/{stored.key}"

    assert store.delete(stored.key) is True
    assert client.deleted == [stored.key]


def test_s3_store_wraps_client_errors() -> None:
    store = S3BlobStore("course-media", "us-east-1", client=_FakeS3Client(fail_delete=True))

    with pytest.raises(StoreError):
        store.delete("videos/a.mp4")


def test_discard_blob_swallows_failures() -> None:
    store = S3BlobStore("course-media", "us-east-1", client=_FakeS3Client(fail_delete=True))

    assert discard_blob(store, "videos/a.mp4", reason="test") is False
    assert discard_blob(store, None, reason="test") is False


def test_build_blob_store_selects_backend(temp_config) -> None:
    local = build_blob_store(temp_config)
    assert isinstance(local, LocalBlobStore)
    assert local.root == temp_config.uploads_root.resolve()

    missing_bucket = dataclasses.replace(temp_config, blob_backend="s3", s3_bucket=None)
    with pytest.raises(ValueError):
        build_blob_store(missing_bucket)
