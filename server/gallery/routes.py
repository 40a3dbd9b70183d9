"""
HTTP routes for the gallery API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from gallery.dependencies import get_gallery_service
from gallery.errors import (
    GalleryError,
    NotFoundError,
    PersistenceError,
    StorageUnavailableError,
    ValidationError,
)
from gallery.schemas import (
    DeleteResponse,
    HealthResponse,
    ImageResponse,
    UploadError,
    UploadResponse,
)
from gallery.service import GalleryService, MediaUpload

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (StorageUnavailableError, 503),
    (PersistenceError, 500),
)


def status_for_error(exc: GalleryError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def gallery_error_handler(request: Request, exc: GalleryError) -> JSONResponse:
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@router.get("/health", response_model=HealthResponse)
def health(service: GalleryService = Depends(get_gallery_service)):
    return service.health()


@router.get("/images", response_model=dict[str, list[ImageResponse]])
def list_images(service: GalleryService = Depends(get_gallery_service)):
    """Return every category with its images."""
    return service.get_catalog().as_dict()


@router.get("/images/{category}", response_model=list[ImageResponse])
def list_category_images(
    category: str, service: GalleryService = Depends(get_gallery_service)
):
    """Return one category's images, or an empty list for an unknown category."""
    return [record.as_dict() for record in service.get_bucket(category)]


@router.post("/upload", response_model=UploadResponse, status_code=201)
async def upload_images(
    files: list[UploadFile] | None = File(None),
    file: UploadFile | None = File(None),
    category: str | None = Form(None),
    captions: str | None = Form(None),
    caption: str | None = Form(None),
    service: GalleryService = Depends(get_gallery_service),
):
    """
    Upload one or more images/videos into a category.

    Accepts either ``files`` (multiple) or ``file`` (single). ``captions`` may
    be a JSON array aligned with the files or a single caption for all.
    """
    incoming = list(files or [])
    if file is not None:
        incoming.append(file)
    uploads = [
        MediaUpload(
            filename=item.filename or "upload",
            data=await item.read(),
            content_type=item.content_type,
        )
        for item in incoming
    ]

    result = await run_in_threadpool(
        service.upload, uploads, category, captions if captions is not None else caption
    )
    return UploadResponse(
        message=f"{len(result.images)} file(s) uploaded successfully",
        images=[ImageResponse.from_record(record) for record in result.images],
        count=len(result.images),
        errors=[
            UploadError(filename=failure.filename, error=failure.error)
            for failure in result.errors
        ],
    )


@router.delete("/upload/{item_id}", response_model=DeleteResponse)
def delete_image(item_id: str, service: GalleryService = Depends(get_gallery_service)):
    service.delete(item_id)
    return DeleteResponse(message="Image deleted successfully", id=item_id)
