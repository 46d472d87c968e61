"""
Dependency wiring for the FastAPI app.

Components are built once from Settings in create_app() and kept on
app.state; request handlers reach them through the getters below.
"""

from __future__ import annotations

import logging

from fastapi import Request

from tattoo_backend.config import Settings
from tattoo_backend.db import InMemoryRecordStore, RecordStore, SqlRecordStore
from tattoo_backend.ingest import IngestionPipeline
from tattoo_backend.storage import BlobStore, LocalBlobStore, S3BlobStore

logger = logging.getLogger(__name__)


def build_record_store(settings: Settings) -> RecordStore:
    if not settings.database_url:
        return InMemoryRecordStore()
    return SqlRecordStore(settings.database_url)


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.storage_backend == "s3" and settings.s3_credentials_complete:
        return S3BlobStore(
            bucket=settings.s3_bucket,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            region=settings.s3_region,
            endpoint=settings.s3_endpoint,
            public_base_url=settings.s3_public_base_url,
            folder=settings.s3_folder,
        )
    return LocalBlobStore(settings.uploads_dir, settings.uploads_url_prefix)


def get_settings_from_app(request: Request) -> Settings:
    return request.app.state.settings


def get_record_store(request: Request) -> RecordStore:
    return request.app.state.record_store


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.pipeline
