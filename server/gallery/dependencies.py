"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from gallery.config import get_settings
from gallery.errors import StorageUnavailableError
from gallery.metadata_store import (
    InMemoryMetadataStore,
    JsonFileMetadataStore,
    MetadataStore,
)
from gallery.service import GalleryService
from gallery.storage import InMemoryMediaStorage, MediaStorageClient, S3MediaStorageClient

logger = logging.getLogger(__name__)

_storage_client: MediaStorageClient | None = None
_metadata_store: MetadataStore | None = None
_gallery_service: GalleryService | None = None


def get_storage_client() -> MediaStorageClient:
    """
    Return the singleton media storage client.

    Outside in-memory mode, incomplete COS settings raise immediately so a
    misconfigured deployment fails on startup rather than on the first upload.
    """
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _storage_client = InMemoryMediaStorage()
        return _storage_client

    missing = settings.missing_storage_settings()
    if missing:
        raise StorageUnavailableError(
            "Media storage is not configured. Missing environment variables: "
            + ", ".join(missing),
            operation="configure",
        )
    _storage_client = S3MediaStorageClient(
        bucket=settings.cos_bucket.strip(),
        region=settings.cos_region.strip(),
        endpoint=settings.cos_endpoint.strip(),
        access_key_id=settings.aws_access_key_id.strip(),
        secret_access_key=settings.aws_secret_access_key.strip(),
        public_base_url=settings.storage_public_base_url,
        timeout_seconds=settings.storage_timeout_seconds,
        max_attempts=settings.storage_max_attempts,
    )
    logger.info(
        "Media storage configured: bucket=%s region=%s", settings.cos_bucket, settings.cos_region
    )
    return _storage_client


def get_metadata_store() -> MetadataStore:
    global _metadata_store
    if _metadata_store:
        return _metadata_store

    settings = get_settings()
    if settings.use_in_memory_backends:
        _metadata_store = InMemoryMetadataStore(settings.categories)
    else:
        _metadata_store = JsonFileMetadataStore(settings.data_path, settings.categories)
    return _metadata_store


def get_gallery_service() -> GalleryService:
    """
    Return a singleton service so every request shares one writer lock.
    """
    global _gallery_service
    if _gallery_service:
        return _gallery_service

    settings = get_settings()
    _gallery_service = GalleryService(
        get_storage_client(),
        get_metadata_store(),
        labels=settings.categories,
        root_folder=settings.storage_root_folder,
        max_upload_bytes=settings.max_upload_bytes,
        sync_max_results=settings.sync_max_results,
        sync_max_workers=settings.sync_max_workers,
    )
    return _gallery_service


def reset_dependencies() -> None:
    """Drop cached clients (useful in tests and scripts)."""
    global _storage_client, _metadata_store, _gallery_service
    _storage_client = None
    _metadata_store = None
    _gallery_service = None
