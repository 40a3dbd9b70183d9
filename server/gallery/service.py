"""
Gallery service: the read path plus uploads and deletes.

Every change to the catalog is a full load-modify-save cycle taken under one
re-entrant writer lock, shared with the reconciler. Storage calls for uploads
run before the lock is taken; deletes remove the remote object first and only
then drop the record.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union
from uuid import uuid4

from gallery.catalog import Catalog, ImageRecord, utc_now_iso
from gallery.categories import is_valid_category
from gallery.config import DEFAULT_CATEGORIES
from gallery.errors import (
    CatalogNotFoundError,
    NotFoundError,
    PersistenceError,
    StorageUnavailableError,
    ValidationError,
)
from gallery.media import is_allowed_media
from gallery.metadata_store import MetadataStore
from gallery.reconciler import Reconciler, RepairReport
from gallery.storage import MediaStorageClient, StoredObject

logger = logging.getLogger(__name__)


@dataclass
class MediaUpload:
    filename: str
    data: bytes
    content_type: Optional[str] = None


@dataclass
class UploadFailure:
    filename: str
    error: str


@dataclass
class UploadResult:
    images: list[ImageRecord] = field(default_factory=list)
    errors: list[UploadFailure] = field(default_factory=list)


def parse_captions(
    raw: Union[str, Sequence[Optional[str]], None], count: int
) -> list[str]:
    """
    Expand the caption form field into one caption per file.

    A JSON array is aligned with the files by position; any other non-empty
    string is used for every file.
    """
    if raw is None:
        return [""] * count
    if isinstance(raw, str):
        if not raw.strip():
            return [""] * count
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = None
        if not isinstance(parsed, list):
            return [raw] * count
        raw = parsed
    captions = ["" if caption is None else str(caption) for caption in raw]
    return (captions + [""] * count)[:count]


class GalleryService:
    def __init__(
        self,
        storage: MediaStorageClient,
        store: MetadataStore,
        *,
        labels: Sequence[str] = DEFAULT_CATEGORIES,
        root_folder: str = "josh-farewell",
        max_upload_bytes: int = 100 * 1024 * 1024,
        sync_max_results: int = 500,
        sync_max_workers: int = 3,
        lock: Optional[threading.RLock] = None,
    ):
        self.storage = storage
        self.store = store
        self.labels = tuple(labels)
        self.root_folder = root_folder.strip("/")
        self.max_upload_bytes = max_upload_bytes
        self._lock = lock or threading.RLock()
        self.reconciler = Reconciler(
            storage,
            store,
            labels=self.labels,
            root_folder=self.root_folder,
            max_results=sync_max_results,
            max_workers=sync_max_workers,
            lock=self._lock,
        )

    def _load_or_none(self) -> Optional[Catalog]:
        try:
            return self.store.load()
        except CatalogNotFoundError:
            return None

    def get_catalog(self) -> Catalog:
        """Return the saved catalog, syncing from storage when it is absent or empty."""
        catalog = self._load_or_none()
        if not self.reconciler.needs_reconcile(catalog):
            return catalog
        with self._lock:
            catalog = self._load_or_none()
            if self.reconciler.needs_reconcile(catalog):
                logger.info("Catalog absent or empty; syncing from media storage")
                catalog = self.reconciler.reconcile(previous=catalog)
        return catalog

    def get_bucket(self, category: str) -> list[ImageRecord]:
        if not is_valid_category(category, self.labels):
            return []
        return self.get_catalog().bucket(category)

    def _validate_upload(self, upload: MediaUpload) -> None:
        name = upload.filename or "upload"
        if not upload.data:
            raise ValidationError(f"File {name} is empty")
        if len(upload.data) > self.max_upload_bytes:
            raise ValidationError(
                f"File {name} exceeds the {self.max_upload_bytes} byte limit"
            )
        if not is_allowed_media(name, upload.content_type):
            raise ValidationError(
                "Only image and video files are allowed. "
                f"Received: {upload.content_type or 'unknown type'}"
            )

    @staticmethod
    def _unique_id(candidate: str, existing: set[str]) -> str:
        while candidate in existing:
            candidate = f"{candidate}{uuid4().hex[:6]}"
        return candidate

    def upload(
        self,
        files: Sequence[MediaUpload],
        category: Optional[str],
        captions: Union[str, Sequence[Optional[str]], None] = None,
    ) -> UploadResult:
        """
        Upload a batch of files into one category.

        Each file is sent to storage on its own; only files storage accepted
        are added to the catalog, and the rest are reported in ``errors``.
        When no file could be stored the first storage error is raised.
        """
        if not is_valid_category(category, self.labels):
            raise ValidationError(
                f"Invalid category. Must be one of: {', '.join(self.labels)}"
            )
        files = list(files or [])
        if not files:
            raise ValidationError("No files uploaded")
        for upload in files:
            self._validate_upload(upload)
        caption_list = parse_captions(captions, len(files))

        # Establish the synced baseline before adding anything new.
        self.get_catalog()

        folder = f"{self.root_folder}/{category}"
        stored: list[tuple[int, StoredObject]] = []
        result = UploadResult()
        first_error: Optional[StorageUnavailableError] = None
        for index, upload in enumerate(files):
            try:
                obj = self.storage.upload_object(
                    upload.data,
                    folder=folder,
                    filename=upload.filename,
                    content_type=upload.content_type,
                )
            except StorageUnavailableError as exc:
                logger.error("Upload of %s failed: %s", upload.filename, exc)
                result.errors.append(UploadFailure(upload.filename, str(exc)))
                first_error = first_error or exc
                continue
            except Exception:
                self._discard_stored([obj for _, obj in stored])
                raise
            stored.append((index, obj))

        if not stored:
            raise first_error

        with self._lock:
            catalog = self._load_or_none() or Catalog.empty(self.labels)
            existing = catalog.ids()
            stamp = str(int(time.time() * 1000))
            for index, obj in stored:
                item_id = self._unique_id(f"{stamp}{index}", existing)
                existing.add(item_id)
                record = ImageRecord(
                    id=item_id,
                    url=obj.public_url,
                    storage_id=obj.storage_id,
                    category=category,
                    caption=caption_list[index],
                    uploaded_at=utc_now_iso(),
                    width=obj.width,
                    height=obj.height,
                    format=obj.format,
                    resource_type=obj.resource_type,
                )
                catalog.buckets[category].append(record)
                result.images.append(record)
            try:
                self.store.save(catalog)
            except PersistenceError:
                self._discard_stored([obj for _, obj in stored])
                raise

        logger.info(
            "Uploaded %d file(s) to %s (%d failed)",
            len(result.images),
            category,
            len(result.errors),
        )
        return result

    def _discard_stored(self, objects: list[StoredObject]) -> None:
        for obj in objects:
            try:
                self.storage.delete_object(obj.storage_id)
            except StorageUnavailableError as exc:
                logger.error("Could not remove orphaned object %s: %s", obj.storage_id, exc)

    def delete(self, item_id: str) -> ImageRecord:
        """
        Delete one record and its stored object.

        The remote delete happens first; if it fails the catalog is left
        unchanged and the error propagates.
        """
        with self._lock:
            catalog = self._load_or_none() or Catalog.empty(self.labels)
            location = catalog.find(item_id)
            if location is None:
                raise NotFoundError(f"Image {item_id} not found")
            label, index = location
            record = catalog.buckets[label][index]
            if record.storage_id:
                self.storage.delete_object(record.storage_id)
            else:
                logger.warning("Image %s has no storage id; removing record only", item_id)
            del catalog.buckets[label][index]
            self.store.save(catalog)
        logger.info("Deleted image %s from %s", item_id, label)
        return record

    def sync(self) -> Catalog:
        """Force a full sync from storage regardless of the saved catalog."""
        with self._lock:
            return self.reconciler.reconcile()

    def repair_categories(self) -> RepairReport:
        return self.reconciler.repair()

    def health(self) -> dict:
        reachable = self.storage.ping()
        return {"status": "ok", "storage": "reachable" if reachable else "unreachable"}
