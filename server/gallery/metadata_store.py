"""
Metadata store: the whole catalog persisted as one JSON document.

There is no partial update API. Callers load the catalog, change it in
memory, and save it back, holding the service's writer lock around the cycle.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol, Sequence

from gallery.catalog import Catalog
from gallery.config import DEFAULT_CATEGORIES
from gallery.errors import CatalogNotFoundError, PersistenceError

logger = logging.getLogger(__name__)


class MetadataStore(Protocol):
    """Interface for loading and saving the catalog as a single unit."""

    def load(self) -> Catalog:
        ...

    def save(self, catalog: Catalog) -> None:
        ...


class InMemoryMetadataStore:
    """Simple in-memory store for development and tests."""

    def __init__(self, labels: Sequence[str] = DEFAULT_CATEGORIES):
        self.labels = tuple(labels)
        self.document: Optional[dict] = None
        self.saves = 0

    def load(self) -> Catalog:
        if self.document is None:
            raise CatalogNotFoundError("No catalog has been saved")
        return Catalog.from_dict(json.loads(json.dumps(self.document)), self.labels)

    def save(self, catalog: Catalog) -> None:
        # Round-trip through JSON to mimic the file-backed store.
        self.document = json.loads(json.dumps(catalog.as_dict()))
        self.saves += 1

    def reset(self) -> None:
        """Forget the saved catalog (useful in tests)."""
        self.document = None
        self.saves = 0


class JsonFileMetadataStore:
    """Catalog persisted as an indented JSON file, replaced atomically on save."""

    def __init__(self, path: str | Path, labels: Sequence[str] = DEFAULT_CATEGORIES):
        self.path = Path(path).expanduser()
        self.labels = tuple(labels)

    def load(self) -> Catalog:
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError as exc:
            raise CatalogNotFoundError(f"No catalog at {self.path}") from exc
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"Catalog at {self.path} is not valid JSON: {exc}") from exc
        except OSError as exc:
            raise PersistenceError(f"Could not read catalog at {self.path}: {exc}") from exc
        return Catalog.from_dict(payload, self.labels)

    def save(self, catalog: Catalog) -> None:
        temp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=str(self.path.parent),
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                temp_name = handle.name
                json.dump(catalog.as_dict(), handle, indent=2, ensure_ascii=False)
                handle.flush()
                os.fsync(handle.fileno())
            Path(temp_name).replace(self.path)
        except OSError as exc:
            if temp_name and os.path.exists(temp_name):
                os.unlink(temp_name)
            raise PersistenceError(f"Could not write catalog to {self.path}: {exc}") from exc
        logger.debug("Saved catalog %s to %s", catalog.counts(), self.path)
