"""Exception hierarchy shared by the catalog, storage, and HTTP layers.

Routes translate these into HTTP status codes; the reconciler recovers from
``StorageUnavailableError`` locally, while the mutation paths let it surface.
"""

from __future__ import annotations

__all__ = [
    "GalleryError",
    "ValidationError",
    "NotFoundError",
    "CatalogNotFoundError",
    "StorageUnavailableError",
    "PersistenceError",
]


class GalleryError(RuntimeError):
    """Base exception for gallery catalog and storage failures."""


class ValidationError(GalleryError):
    """Raised for a bad category, a missing file, or a missing required field."""


class NotFoundError(GalleryError):
    """Raised when an item id or category is unknown."""


class CatalogNotFoundError(NotFoundError):
    """Raised by the metadata store when no catalog has been persisted yet."""


class StorageUnavailableError(GalleryError):
    """Raised when media storage is unreachable or misconfigured."""

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class PersistenceError(GalleryError):
    """Raised when the local metadata document cannot be read or written."""
