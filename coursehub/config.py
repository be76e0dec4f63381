"""Configuration loading utilities for the CourseHub application."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".coursehub_write_check"

_DEFAULT_MAX_UPLOAD_BYTES = 2 * 1024 * 1024 * 1024
_BLOB_BACKENDS = ("local", "s3")


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    test_file = path / _PERMISSION_SENTINEL
    try:
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            test_file.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return a usable directory based on ``preferred`` and ``fallbacks``.

    The first writable candidate wins. A flag reports whether a fallback was
    used. When nothing can be prepared the original ``preferred`` path is
    returned so that bootstrap can fail loudly.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


def _read_max_upload_bytes(value: Any) -> int:
    raw = (os.environ.get("COURSEHUB_MAX_UPLOAD_BYTES") or "").strip()
    if not raw:
        raw = value
    try:
        return int(raw) if raw not in (None, "") else _DEFAULT_MAX_UPLOAD_BYTES
    except (TypeError, ValueError):
        LOGGER.warning("Ignoring invalid upload limit %r", raw)
        return _DEFAULT_MAX_UPLOAD_BYTES


@dataclass(frozen=True)
class AppConfig:
    """Runtime paths and service settings for the application."""

    storage_root: Path
    database_file: Path
    uploads_root: Path
    admin_token: Optional[str] = None
    blob_backend: str = "local"
    s3_bucket: Optional[str] = None
    s3_region: str = "ap-south-1"
    max_upload_bytes: int = _DEFAULT_MAX_UPLOAD_BYTES

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any], *, base_path: Path) -> "AppConfig":
        preferred_storage = (base_path / mapping["storage_root"]).resolve()
        storage_fallback = Path.home() / ".coursehub" / "storage"
        storage_root, storage_fallback_used = _select_writable_directory(
            preferred_storage,
            label="storage",
            fallbacks=(storage_fallback,),
        )

        database_file = (base_path / mapping["database_file"]).resolve()

        preferred_uploads = (base_path / mapping["uploads_root"]).resolve()
        uploads_root, _ = _select_writable_directory(
            preferred_uploads,
            label="uploads",
            fallbacks=(storage_root / "uploads",),
        )

        if storage_fallback_used:
            try:
                relative_database = database_file.relative_to(preferred_storage)
            except ValueError:
                relative_database = None
            if relative_database is not None:
                fallback_database = (storage_root / relative_database).resolve()
                if _ensure_writable_directory(fallback_database.parent):
                    LOGGER.warning(
                        "Preferred database location '%s' is not writable; using fallback '%s'.",
                        database_file,
                        fallback_database,
                    )
                    database_file = fallback_database

        if not _ensure_writable_directory(database_file.parent):
            fallback_database = (storage_root / database_file.name).resolve()
            if fallback_database != database_file and _ensure_writable_directory(
                fallback_database.parent
            ):
                LOGGER.warning(
                    "Preferred database location '%s' is not writable; using fallback '%s'.",
                    database_file,
                    fallback_database,
                )
                database_file = fallback_database
            else:
                LOGGER.warning(
                    "Database location '%s' is not writable and no fallback is available.",
                    database_file,
                )

        admin_token = (os.environ.get("COURSEHUB_ADMIN_TOKEN") or "").strip() or (
            str(mapping.get("admin_token") or "").strip() or None
        )

        blob_backend = str(mapping.get("blob_backend") or "local").strip().lower()
        if blob_backend not in _BLOB_BACKENDS:
            raise ValueError(
                f"Unsupported blob backend '{blob_backend}'; expected one of {', '.join(_BLOB_BACKENDS)}"
            )

        return cls(
            storage_root=storage_root,
            database_file=database_file,
            uploads_root=uploads_root,
            admin_token=admin_token,
            blob_backend=blob_backend,
            s3_bucket=mapping.get("s3_bucket") or None,
            s3_region=str(mapping.get("s3_region") or "ap-south-1"),
            max_upload_bytes=_read_max_upload_bytes(mapping.get("max_upload_bytes")),
        )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the application configuration from ``config/default.json`` by default."""

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        config_path = base_path / "config" / "default.json"

    with config_path.open("r", encoding="utf-8") as config_file:
        raw_config = json.load(config_file)

    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = ["AppConfig", "load_config"]
