"""
HTTP routes for the tattoo data API and the diagnostic pages.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from tattoo_backend.config import Settings
from tattoo_backend.db import RecordStore, TattooRecord
from tattoo_backend.dependencies import (
    get_blob_store,
    get_pipeline,
    get_record_store,
    get_settings_from_app,
)
from tattoo_backend.errors import NotFoundError, StorageError, ValidationError
from tattoo_backend.ingest import IngestionPipeline, TattooSubmission
from tattoo_backend.reconcile import reconcile
from tattoo_backend.schemas import (
    CreateTattooResponse,
    DeleteTattooResponse,
    ErrorResponse,
    MissingFileResponse,
    ServerFile,
    ServerFilesResponse,
    ServerInfo,
    TattooResponse,
    UploadLimitsResponse,
)
from tattoo_backend.storage import (
    ACCEPTED_CONTENT_TYPES,
    ACCEPTED_EXTENSIONS,
    BlobStore,
)
from tattoo_backend.views import export_filename, export_records, render_uploads_browser

logger = logging.getLogger(__name__)

router = APIRouter()
pages_router = APIRouter()

# Room for the boundaries and the small text fields alongside the image.
FORM_OVERHEAD_BYTES = 64 * 1024

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _to_response(record: TattooRecord, settings: Settings) -> TattooResponse:
    return TattooResponse(**record.as_dict(settings.duration_unit))


def _storage_name(blob_store: BlobStore) -> str:
    return type(blob_store).__name__


def _pick_duration(form, settings: Settings) -> tuple[str, Optional[str]]:
    """The duration may arrive as `duration` or as the unit-specific legacy field."""
    if form.get("duration") is not None:
        return "duration", form.get("duration")
    if form.get(settings.duration_field) is not None:
        return settings.duration_field, form.get(settings.duration_field)
    return "duration", None


def _reject_oversized_body(request: Request, settings: Settings) -> None:
    """Refuse a request whose declared size cannot hold an acceptable image, before reading it."""
    declared = request.headers.get("content-length")
    if not declared or not declared.isdigit():
        return
    if int(declared) > settings.max_image_bytes + FORM_OVERHEAD_BYTES:
        raise ValidationError(
            "image",
            "Image is too large (max %.1f MB)" % (settings.max_image_bytes / (1024 * 1024)),
        )


@router.post(
    "/tattoos",
    response_model=CreateTattooResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
)
async def create_tattoo(
    request: Request,
    pipeline: IngestionPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings_from_app),
):
    _reject_oversized_body(request, settings)
    form = await request.form()
    image = form.get("image")
    filename = content_type = None
    data = None
    if isinstance(image, UploadFile) and image.filename:
        filename = image.filename
        content_type = image.content_type
        # One byte past the limit is enough to know the upload is too large.
        data = await image.read(settings.max_image_bytes + 1)

    duration_field, duration = _pick_duration(form, settings)
    tags = form.get("tags")
    price = form.get("price")
    submission = TattooSubmission(
        filename=filename,
        content_type=content_type,
        data=data,
        price=price if isinstance(price, str) else None,
        duration=duration if isinstance(duration, str) else None,
        tags=tags if isinstance(tags, str) else None,
        duration_field=duration_field,
    )
    record = await run_in_threadpool(pipeline.submit, submission)
    return CreateTattooResponse(record=_to_response(record, settings))


@router.get("/tattoos", response_model=list[TattooResponse], responses=ERROR_RESPONSES)
def list_tattoos(
    store: RecordStore = Depends(get_record_store),
    settings: Settings = Depends(get_settings_from_app),
):
    return [_to_response(record, settings) for record in store.list_all()]


@router.delete(
    "/tattoos/{record_id}",
    response_model=DeleteTattooResponse,
    responses=ERROR_RESPONSES,
)
def delete_tattoo(
    record_id: str,
    store: RecordStore = Depends(get_record_store),
    blob_store: BlobStore = Depends(get_blob_store),
    settings: Settings = Depends(get_settings_from_app),
):
    image_ref = None
    if settings.delete_blob_with_record:
        image_ref = next(
            (r.image_ref for r in store.list_all() if r.id == record_id), None
        )
    if not store.delete_by_id(record_id):
        raise NotFoundError(record_id)
    logger.info("Deleted tattoo %s", record_id)

    if image_ref:
        try:
            blob_store.delete(image_ref)
        except StorageError as exc:
            logger.warning("Record %s deleted but its image was not: %s", record_id, exc.cause or exc)
    return DeleteTattooResponse(id=record_id)


@router.get("/server-files", response_model=ServerFilesResponse, responses=ERROR_RESPONSES)
def server_files(
    store: RecordStore = Depends(get_record_store),
    blob_store: BlobStore = Depends(get_blob_store),
    settings: Settings = Depends(get_settings_from_app),
):
    logger.info("Reading server files from %s", blob_store.location)
    report = reconcile(store.list_all(), blob_store.list_blobs())
    return ServerFilesResponse(
        serverInfo=ServerInfo(
            environment=settings.environment,
            storage=_storage_name(blob_store),
            uploadsPath=blob_store.location,
            enumerable=report.enumerable,
            totalFiles=len(report.files),
        ),
        files=[
            ServerFile(
                name=usage.blob.name,
                path=usage.blob.path,
                size=usage.blob.size,
                created=usage.blob.created,
                used=usage.used,
            )
            for usage in report.files
        ],
        missingFiles=[
            MissingFileResponse(id=m.id, url=m.url, filename=m.filename)
            for m in report.missing_files
        ],
    )


@router.get("/upload-limits", response_model=UploadLimitsResponse)
def upload_limits(settings: Settings = Depends(get_settings_from_app)):
    return UploadLimitsResponse(
        maxImageBytes=settings.max_image_bytes,
        acceptedTypes=list(ACCEPTED_CONTENT_TYPES),
        acceptedExtensions=list(ACCEPTED_EXTENSIONS),
        durationUnit=settings.duration_unit,
        durationField=settings.duration_field,
    )


@pages_router.get("/download-data")
def download_data(
    store: RecordStore = Depends(get_record_store),
    settings: Settings = Depends(get_settings_from_app),
):
    body = export_records(store.list_all(), settings.duration_unit)
    return Response(
        content=body,
        media_type="application/json",
        headers={"Content-Disposition": f"attachment; filename={export_filename()}"},
    )


@pages_router.get("/uploads-browser", response_class=HTMLResponse)
def uploads_browser(
    store: RecordStore = Depends(get_record_store),
    blob_store: BlobStore = Depends(get_blob_store),
    settings: Settings = Depends(get_settings_from_app),
):
    records = store.list_all()
    report = reconcile(records, blob_store.list_blobs())
    return HTMLResponse(
        render_uploads_browser(
            report,
            records=records,
            duration_unit=settings.duration_unit,
            environment=settings.environment,
            location=blob_store.location,
            storage=_storage_name(blob_store),
        )
    )


@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
def api_not_found(path: str):
    # Registered last so only paths no other API route claims land here.
    raise HTTPException(status_code=404)
