"""
Pydantic schemas for the gallery API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from gallery.catalog import ImageRecord


class ImageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    url: str
    public_id: str = Field(alias="publicId")
    category: Optional[str] = None
    caption: str = ""
    uploaded_at: str = Field(alias="uploadedAt")
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None
    resource_type: str = Field(default="image", alias="resourceType")

    @classmethod
    def from_record(cls, record: ImageRecord) -> "ImageResponse":
        return cls.model_validate(record.as_dict())


class UploadError(BaseModel):
    filename: str
    error: str


class UploadResponse(BaseModel):
    message: str
    images: list[ImageResponse]
    count: int
    errors: list[UploadError] = []


class DeleteResponse(BaseModel):
    message: str
    id: str


class HealthResponse(BaseModel):
    status: Literal["ok"]
    storage: Literal["reachable", "unreachable"]
