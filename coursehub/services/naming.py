"""Utility helpers for consistent blob keys and display titles."""

from __future__ import annotations

import re
import uuid
from pathlib import PurePosixPath
from typing import Optional

__all__ = [
    "slugify",
    "build_blob_key",
    "title_from_filename",
]


def slugify(value: str) -> str:
    """Return a key-friendly representation of *value*."""

    value = value.strip().lower()
    value = re.sub(r"[^a-z0-9]+", "-", value)
    value = re.sub(r"-+", "-", value).strip("-")
    return value or "item"


def build_blob_key(folder: str, filename: str, *, token: Optional[str] = None) -> str:
    """Return ``<folder>/<random hex><ext>`` for an uploaded *filename*.

    The original filename only contributes its extension so keys never leak
    user-provided names and never collide.
    """

    suffix = PurePosixPath(filename or "").suffix.lower()
    if suffix and not re.fullmatch(r"\.[a-z0-9]{1,10}", suffix):
        suffix = ""
    stem = token or uuid.uuid4().hex
    return f"{slugify(folder)}/{stem}{suffix}"


def title_from_filename(filename: str) -> str:
    """Return *filename* without directory and final extension."""

    name = PurePosixPath((filename or "").replace("\\", "/")).name
    stem, dot, _extension = name.rpartition(".")
    if dot and stem:
        return stem
    return name
