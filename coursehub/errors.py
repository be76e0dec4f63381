"""Exception types shared by the catalog store, the API and the upload client."""

from __future__ import annotations


class CourseHubError(RuntimeError):
    """Base class for application errors."""


class ValidationError(CourseHubError):
    """Raised when input is malformed (missing field, wrong identifier list)."""


class NotFoundError(CourseHubError):
    """Raised when an entity is absent or not visible to the caller."""


class StoreError(CourseHubError):
    """Raised when a persistent store operation fails."""


class TransferError(CourseHubError):
    """Raised by upload transports; captured on the queue item, never past the queue."""


__all__ = [
    "CourseHubError",
    "NotFoundError",
    "StoreError",
    "TransferError",
    "ValidationError",
]
