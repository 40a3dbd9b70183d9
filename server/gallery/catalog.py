"""
Catalog data model: image records grouped into category buckets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional, Sequence

from gallery.config import DEFAULT_CATEGORIES

logger = logging.getLogger(__name__)

_KNOWN_KEYS = {
    "id",
    "url",
    "publicId",
    "category",
    "caption",
    "uploadedAt",
    "width",
    "height",
    "format",
    "resourceType",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class ImageRecord:
    id: str
    url: str
    storage_id: str
    category: Optional[str]
    caption: str = ""
    uploaded_at: str = field(default_factory=utc_now_iso)
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None
    resource_type: str = "image"
    extra: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        payload = dict(self.extra)
        payload.update(
            {
                "id": self.id,
                "url": self.url,
                "publicId": self.storage_id,
                "category": self.category,
                "caption": self.caption,
                "uploadedAt": self.uploaded_at,
                "width": self.width,
                "height": self.height,
                "format": self.format,
                "resourceType": self.resource_type,
            }
        )
        return payload

    @classmethod
    def from_dict(cls, payload: dict) -> "ImageRecord":
        return cls(
            id=str(payload.get("id") or ""),
            url=payload.get("url") or "",
            storage_id=payload.get("publicId") or "",
            category=payload.get("category"),
            caption=payload.get("caption") or "",
            uploaded_at=payload.get("uploadedAt") or "",
            width=payload.get("width"),
            height=payload.get("height"),
            format=payload.get("format"),
            resource_type=payload.get("resourceType") or "image",
            extra={k: v for k, v in payload.items() if k not in _KNOWN_KEYS},
        )

    @property
    def path_hint(self) -> str:
        return self.url or self.storage_id


class Catalog:
    """Mapping from category label to the ordered list of its records."""

    def __init__(
        self,
        buckets: Optional[Dict[str, list[ImageRecord]]] = None,
        labels: Sequence[str] = DEFAULT_CATEGORIES,
    ):
        self.labels: tuple[str, ...] = tuple(labels)
        self.buckets: Dict[str, list[ImageRecord]] = {
            label: [] for label in self.labels
        }
        for label, records in (buckets or {}).items():
            if label not in self.buckets:
                raise KeyError(f"Unknown category: {label}")
            self.buckets[label] = list(records)

    @classmethod
    def empty(cls, labels: Sequence[str] = DEFAULT_CATEGORIES) -> "Catalog":
        return cls(labels=labels)

    @classmethod
    def from_dict(
        cls, payload: dict, labels: Sequence[str] = DEFAULT_CATEGORIES
    ) -> "Catalog":
        catalog = cls(labels=labels)
        if not isinstance(payload, dict):
            logger.warning("Catalog document is not an object; treating as empty")
            return catalog
        for key in payload:
            if key not in catalog.buckets:
                logger.warning("Dropping unknown category %r from catalog", key)
        for label in catalog.labels:
            raw = payload.get(label)
            if not isinstance(raw, list):
                if raw is not None:
                    logger.warning("Category %s is not a list; treating as empty", label)
                continue
            catalog.buckets[label] = [
                ImageRecord.from_dict(entry) for entry in raw if isinstance(entry, dict)
            ]
        return catalog

    def as_dict(self) -> dict:
        return {
            label: [record.as_dict() for record in self.buckets[label]]
            for label in self.labels
        }

    def bucket(self, label: str) -> list[ImageRecord]:
        return self.buckets.get(label, [])

    def records(self) -> Iterator[tuple[str, ImageRecord]]:
        for label in self.labels:
            for record in self.buckets[label]:
                yield label, record

    def total_count(self) -> int:
        return sum(len(records) for records in self.buckets.values())

    def counts(self) -> dict[str, int]:
        return {label: len(self.buckets[label]) for label in self.labels}

    def ids(self) -> set[str]:
        return {record.id for _, record in self.records()}

    def find(self, item_id: str) -> Optional[tuple[str, int]]:
        for label in self.labels:
            for index, record in enumerate(self.buckets[label]):
                if record.id == item_id:
                    return label, index
        return None

    def mismatches(self) -> list[tuple[str, ImageRecord]]:
        """Records whose category field differs from the bucket holding them."""
        return [
            (label, record)
            for label, record in self.records()
            if record.category != label
        ]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Catalog):
            return NotImplemented
        return self.labels == other.labels and self.buckets == other.buckets

    def __repr__(self) -> str:
        return f"Catalog({self.counts()!r})"
