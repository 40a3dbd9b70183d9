"""
Reconciliation of the metadata catalog against media storage.

The live path lists every category folder in storage and rebuilds the
catalog from it, falling back to previously saved buckets when a listing
fails or comes back empty. The repair path leaves buckets as they are and
re-stamps records whose category field disagrees with their bucket.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Sequence

from gallery.catalog import Catalog, ImageRecord
from gallery.categories import classify
from gallery.config import DEFAULT_CATEGORIES
from gallery.errors import CatalogNotFoundError, PersistenceError, StorageUnavailableError
from gallery.metadata_store import MetadataStore
from gallery.storage import MediaStorageClient, StoredObject

logger = logging.getLogger(__name__)


def _isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def record_from_object(stored: StoredObject, category: str) -> ImageRecord:
    """Build a catalog record for an object the catalog never recorded."""
    created = _isoformat(stored.created_at)
    return ImageRecord(
        id=f"{stored.storage_id.replace('/', '_')}_{created}",
        url=stored.public_url,
        storage_id=stored.storage_id,
        category=category,
        caption="",
        uploaded_at=created,
        width=stored.width,
        height=stored.height,
        format=stored.format,
        resource_type=stored.resource_type or "image",
    )


@dataclass
class RepairReport:
    fixed: int = 0
    counts: dict = field(default_factory=dict)
    corrections: list = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


class Reconciler:
    """
    Sync and repair passes over one metadata store.

    ``storage`` may be None for the repair pass, which never touches storage.
    """

    def __init__(
        self,
        storage: Optional[MediaStorageClient],
        store: MetadataStore,
        *,
        labels: Sequence[str] = DEFAULT_CATEGORIES,
        root_folder: str = "josh-farewell",
        max_results: int = 500,
        max_workers: int = 3,
        lock: Optional[threading.RLock] = None,
    ):
        self.storage = storage
        self.store = store
        self.labels = tuple(labels)
        self.root_folder = root_folder.strip("/")
        self.max_results = max_results
        self.max_workers = max(1, max_workers)
        self._lock = lock or threading.RLock()

    def folder_for(self, label: str) -> str:
        return f"{self.root_folder}/{label}"

    @staticmethod
    def needs_reconcile(catalog: Optional[Catalog]) -> bool:
        return catalog is None or catalog.total_count() == 0

    def _load_previous(self) -> Optional[Catalog]:
        try:
            return self.store.load()
        except CatalogNotFoundError:
            return None
        except PersistenceError as exc:
            logger.error("Ignoring unreadable catalog during sync: %s", exc)
            return None

    def _fetch(self, label: str) -> list[StoredObject]:
        prefix = self.folder_for(label) + "/"
        try:
            objects = self.storage.list_objects(prefix, max_results=self.max_results)
        except StorageUnavailableError as exc:
            logger.warning("Listing %s failed, keeping saved records: %s", prefix, exc)
            return []
        if len(objects) >= self.max_results:
            logger.warning(
                "Listing %s hit the %d result limit; later objects are skipped",
                prefix,
                self.max_results,
            )
        logger.info("Found %d objects under %s", len(objects), prefix)
        return objects

    def fetch_all(self) -> dict[str, list[StoredObject]]:
        workers = min(self.max_workers, len(self.labels))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {label: executor.submit(self._fetch, label) for label in self.labels}
            return {label: future.result() for label, future in futures.items()}

    def reconcile(self, previous: Optional[Catalog] = None) -> Catalog:
        """
        Rebuild the catalog from storage listings and persist it.

        A category whose listing fails or is empty keeps the records of
        ``previous`` (loaded from the store when not given), re-stamped with
        the category they sit under.
        """
        if self.storage is None:
            raise StorageUnavailableError(
                "No media storage client configured for sync", operation="list"
            )
        if previous is None:
            previous = self._load_previous()
        fetched = self.fetch_all()

        catalog = Catalog.empty(self.labels)
        seen: set[str] = set()
        for label in self.labels:
            objects = fetched.get(label) or []
            if objects:
                records = [record_from_object(stored, label) for stored in objects]
            elif previous is not None and previous.bucket(label):
                logger.info(
                    "Using %d saved records for %s", len(previous.bucket(label)), label
                )
                records = [replace(record, category=label) for record in previous.bucket(label)]
            else:
                records = []

            for record in records:
                if record.id in seen:
                    logger.warning("Skipping duplicate id %s in %s", record.id, label)
                    continue
                seen.add(record.id)
                catalog.buckets[label].append(record)

        with self._lock:
            self.store.save(catalog)
        logger.info("Catalog synced: %s", catalog.counts())
        return catalog

    def repair_categories(self, catalog: Catalog) -> RepairReport:
        """Re-stamp records whose category disagrees with their bucket, in place."""
        report = RepairReport()
        for label in self.labels:
            for record in catalog.bucket(label):
                detected = classify(record.category, record.path_hint, label, self.labels)
                if record.category == label:
                    continue
                if detected != label:
                    logger.info(
                        "Record %s in %s looks like %s; keeping bucket %s",
                        record.id,
                        label,
                        detected,
                        label,
                    )
                report.corrections.append((record.id, record.category, label))
                record.category = label
                report.fixed += 1
        report.counts = catalog.counts()
        return report

    def repair(self) -> RepairReport:
        with self._lock:
            catalog = self.store.load()
            report = self.repair_categories(catalog)
            self.store.save(catalog)
        logger.info("Fixed %d category mismatches", report.fixed)
        return report
