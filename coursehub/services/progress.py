"""Utilities for reporting deterministic progress percentages."""

from __future__ import annotations

from typing import Optional


def percent_of(completed: Optional[float], total: Optional[float]) -> Optional[int]:
    """Return ``completed / total`` as an integer percentage in ``[0, 100]``.

    ``None`` is returned when the total is unknown (``None`` or zero).
    """

    if completed is None or total in {None, 0}:
        return None

    try:
        ratio = float(completed) / float(total)
    except (TypeError, ValueError):
        return None

    clamped = max(0.0, min(ratio, 1.0))
    return int(clamped * 100)


def clamp_transfer_progress(value: float) -> int:
    """Clamp an in-flight transfer report into ``[0, 99]``.

    100 is reserved for "bytes delivered"; the caller switches phase instead
    of storing it as an uploading percentage.
    """

    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(0, min(number, 99))


__all__ = ["clamp_transfer_progress", "percent_of"]
