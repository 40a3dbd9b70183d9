"""
Media storage abstraction for Tencent COS (S3-compatible) and in-memory testing.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol
from urllib.parse import quote
from uuid import uuid4

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from gallery.errors import StorageUnavailableError
from gallery.media import probe_media

logger = logging.getLogger(__name__)


@dataclass
class StoredObject:
    """One object in media storage, with the attributes the gallery shows."""

    storage_path: str
    public_url: str
    storage_id: str
    created_at: datetime
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None
    resource_type: str = "image"


class MediaStorageClient(Protocol):
    """Defines the operations the gallery needs from media storage."""

    def list_objects(self, prefix: str, max_results: int = 500) -> list[StoredObject]:
        ...

    def upload_object(
        self,
        data: bytes,
        *,
        folder: str,
        filename: str,
        content_type: Optional[str] = None,
    ) -> StoredObject:
        ...

    def delete_object(self, storage_id: str) -> None:
        ...

    def ping(self) -> bool:
        ...


def _object_key(folder: str, filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    return f"{folder.strip('/')}/{uuid4().hex}{ext}"


def _int_or_none(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class InMemoryMediaStorage:
    """Test double for media storage interactions."""

    base_url: str = "https://example.test/media"
    stored_objects: dict = None
    unavailable: bool = False
    failing_uploads: set = field(default_factory=set)
    failing_deletes: set = field(default_factory=set)
    deleted: list = field(default_factory=list)
    list_calls: list = field(default_factory=list)

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def _check_available(self, operation: str) -> None:
        if self.unavailable:
            raise StorageUnavailableError(
                f"Media storage unreachable during {operation}", operation=operation
            )

    def add_object(
        self,
        storage_path: str,
        data: bytes = b"",
        *,
        created_at: Optional[datetime] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        format: Optional[str] = "jpg",
        resource_type: str = "image",
    ) -> StoredObject:
        """Seed an object directly, as if it had been uploaded out of band."""
        stored = StoredObject(
            storage_path=storage_path,
            public_url=f"{self.base_url}/{storage_path}",
            storage_id=storage_path,
            created_at=created_at or datetime.now(timezone.utc),
            width=width,
            height=height,
            format=format,
            resource_type=resource_type,
        )
        self.stored_objects[storage_path] = (stored, data)
        return stored

    def list_objects(self, prefix: str, max_results: int = 500) -> list[StoredObject]:
        self.list_calls.append(prefix)
        self._check_available("list")
        matches = [
            stored
            for path, (stored, _) in self.stored_objects.items()
            if path.startswith(prefix)
        ]
        matches.sort(key=lambda stored: (stored.created_at, stored.storage_path))
        return matches[:max_results]

    def upload_object(
        self,
        data: bytes,
        *,
        folder: str,
        filename: str,
        content_type: Optional[str] = None,
    ) -> StoredObject:
        self._check_available("upload")
        if filename in self.failing_uploads:
            raise StorageUnavailableError(
                f"Upload of {filename} rejected by media storage", operation="upload"
            )
        info = probe_media(data, filename, content_type)
        return self.add_object(
            _object_key(folder, filename),
            data,
            width=info.width,
            height=info.height,
            format=info.format,
            resource_type=info.resource_type,
        )

    def delete_object(self, storage_id: str) -> None:
        self._check_available("delete")
        if storage_id in self.failing_deletes:
            raise StorageUnavailableError(
                f"Delete of {storage_id} rejected by media storage", operation="delete"
            )
        self.stored_objects.pop(storage_id, None)
        self.deleted.append(storage_id)

    def ping(self) -> bool:
        return not self.unavailable


@dataclass
class S3MediaStorageClient:
    """
    S3-compatible media storage client for Tencent COS.

    Image attributes are probed at upload time and kept in the object's user
    metadata, so listings can report them without downloading the bytes.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None
    timeout_seconds: float = 30.0
    max_attempts: int = 3

    def __post_init__(self):
        # Use virtual-hosted style addressing to satisfy COS requirements.
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
            connect_timeout=self.timeout_seconds,
            read_timeout=self.timeout_seconds,
            retries={"max_attempts": self.max_attempts, "mode": "standard"},
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def public_url(self, key: str) -> str:
        base = self.public_base_url or f"{self.endpoint.rstrip('/')}/{self.bucket}"
        return f"{base.rstrip('/')}/{quote(key)}"

    def _to_stored(
        self, key: str, created_at: datetime, metadata: dict
    ) -> StoredObject:
        return StoredObject(
            storage_path=key,
            public_url=self.public_url(key),
            storage_id=key,
            created_at=created_at,
            width=_int_or_none(metadata.get("width")),
            height=_int_or_none(metadata.get("height")),
            format=metadata.get("format") or os.path.splitext(key)[1].lstrip(".") or None,
            resource_type=metadata.get("resource-type") or "image",
        )

    def list_objects(self, prefix: str, max_results: int = 500) -> list[StoredObject]:
        paginator = self._client.get_paginator("list_objects_v2")
        objects: list[StoredObject] = []
        try:
            pages = paginator.paginate(
                Bucket=self.bucket,
                Prefix=prefix,
                PaginationConfig={
                    "MaxItems": max_results,
                    "PageSize": min(1000, max_results),
                },
            )
            for page in pages:
                for entry in page.get("Contents", []):
                    key = entry["Key"]
                    if key.endswith("/"):
                        continue
                    head = self._client.head_object(Bucket=self.bucket, Key=key)
                    objects.append(
                        self._to_stored(
                            key, entry["LastModified"], head.get("Metadata") or {}
                        )
                    )
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError(
                f"Listing {prefix} failed: {exc}", operation="list"
            ) from exc
        return objects[:max_results]

    def upload_object(
        self,
        data: bytes,
        *,
        folder: str,
        filename: str,
        content_type: Optional[str] = None,
    ) -> StoredObject:
        info = probe_media(data, filename, content_type)
        key = _object_key(folder, filename)
        metadata = {"resource-type": info.resource_type}
        if info.format:
            metadata["format"] = info.format
        if info.width is not None and info.height is not None:
            metadata["width"] = str(info.width)
            metadata["height"] = str(info.height)
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=info.content_type,
                Metadata=metadata,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError(
                f"Upload of {filename} failed: {exc}", operation="upload"
            ) from exc
        return StoredObject(
            storage_path=key,
            public_url=self.public_url(key),
            storage_id=key,
            created_at=datetime.now(timezone.utc),
            width=info.width,
            height=info.height,
            format=info.format,
            resource_type=info.resource_type,
        )

    def delete_object(self, storage_id: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=storage_id)
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError(
                f"Delete of {storage_id} failed: {exc}", operation="delete"
            ) from exc

    def ping(self) -> bool:
        try:
            self._client.head_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError) as exc:
            logger.warning("Media storage ping failed: %s", exc)
            return False
        return True
