"""
FastAPI application entry point for the gallery backend.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from gallery.config import get_settings
from gallery.dependencies import get_gallery_service
from gallery.errors import GalleryError
from gallery.routes import gallery_error_handler, router


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Resolve storage and metadata eagerly so bad credentials fail at startup.
    get_gallery_service()
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Memorial Gallery Backend", version="0.1.0", lifespan=lifespan)
    app.include_router(router, prefix=settings.api_prefix)
    app.add_exception_handler(GalleryError, gallery_error_handler)
    return app


app = create_app()
