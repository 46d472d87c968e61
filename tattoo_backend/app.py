"""
FastAPI application entry point for the tattoo data service.
"""

from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from tattoo_backend.config import Settings, get_settings
from tattoo_backend.db import RecordStore, connect_with_retry
from tattoo_backend.dependencies import build_blob_store, build_record_store
from tattoo_backend.errors import TattooDataError, ValidationError
from tattoo_backend.ingest import IngestionPipeline
from tattoo_backend.routes import pages_router, router
from tattoo_backend.storage import BlobStore, LocalBlobStore

logger = logging.getLogger(__name__)


def _start_database_connection(store: RecordStore, settings: Settings) -> threading.Thread:
    thread = threading.Thread(
        target=connect_with_retry,
        args=(store,),
        kwargs={
            "max_retries": settings.db_connect_max_retries,
            "base_delay": settings.db_connect_base_delay,
            "max_delay": settings.db_connect_max_delay,
        },
        name="db-connect",
        daemon=True,
    )
    thread.start()
    return thread


def _error_page(settings: Settings, status_code: int):
    page = Path(settings.public_dir) / "error.html"
    if page.is_file():
        return FileResponse(page, status_code=status_code, media_type="text/html")
    return HTMLResponse("<h1>Something went wrong</h1>", status_code=status_code)


def _install_error_handlers(app: FastAPI, settings: Settings) -> None:
    def is_api(request: Request) -> bool:
        return request.url.path.startswith(settings.api_prefix.rstrip("/") + "/")

    @app.exception_handler(TattooDataError)
    async def handle_tattoo_error(request: Request, exc: TattooDataError):
        if not isinstance(exc, ValidationError) and exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        if is_api(request):
            return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
        return _error_page(settings, exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if is_api(request):
            message = "API endpoint not found" if exc.status_code == 404 else str(exc.detail)
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": message},
                headers=getattr(exc, "headers", None),
            )
        return _error_page(settings, exc.status_code)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        if is_api(request):
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error"},
            )
        return _error_page(settings, 500)


def create_app(
    settings: Optional[Settings] = None,
    *,
    record_store: Optional[RecordStore] = None,
    blob_store: Optional[BlobStore] = None,
) -> FastAPI:
    settings = settings or get_settings()
    record_store = record_store or build_record_store(settings)
    blob_store = blob_store or build_blob_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting tattoo data service in %s mode", settings.environment)
        for warning in settings.configuration_warnings():
            logger.warning(warning)
        logger.info("Image storage: %s", blob_store.location)
        # The listener comes up first; the database connects in the background.
        _start_database_connection(record_store, settings)
        yield
        logger.info("Shutting down tattoo data service")

    app = FastAPI(title="Tattoo Data Collector", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.record_store = record_store
    app.state.blob_store = blob_store
    app.state.pipeline = IngestionPipeline(
        blob_store, record_store, max_image_bytes=settings.max_image_bytes
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _install_error_handlers(app, settings)

    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(pages_router)
    if isinstance(blob_store, LocalBlobStore):
        app.mount(
            blob_store.url_prefix,
            StaticFiles(directory=str(blob_store.root)),
            name="uploads",
        )
    app.mount("/", StaticFiles(directory=settings.public_dir, html=True), name="public")
    return app
