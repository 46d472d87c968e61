"""
Ingestion pipeline: validate a submission, store its image, then persist the record.

There is no transaction spanning the blob store and the record store. If the
record insert fails after the image was written, the image is deleted again
before the error is re-raised.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from tattoo_backend.db import RecordStore, TattooRecord
from tattoo_backend.errors import PersistenceError, StorageError, ValidationError
from tattoo_backend.storage import BlobStore, validate_image

logger = logging.getLogger(__name__)


@dataclass
class TattooSubmission:
    """Raw form input, before validation."""

    filename: Optional[str]
    content_type: Optional[str]
    data: Optional[bytes]
    price: Optional[str]
    duration: Optional[str]
    tags: Optional[str] = None
    duration_field: str = "duration"


def parse_tags(raw: Optional[str]) -> list[str]:
    """
    Split a comma-separated tag string. Pieces are stripped and empty pieces dropped.
    """
    if not raw:
        return []
    return [piece.strip() for piece in raw.split(",") if piece.strip()]


def parse_non_negative(field_name: str, raw: Optional[str]) -> float:
    if raw is None or not str(raw).strip():
        raise ValidationError(field_name, f"{field_name} is required")
    try:
        value = float(str(raw).strip())
    except ValueError:
        raise ValidationError(field_name, f"{field_name} must be a number") from None
    if not math.isfinite(value) or value < 0:
        raise ValidationError(
            field_name, f"{field_name} must be a finite, non-negative number"
        )
    return value


def validate_submission(
    submission: TattooSubmission, max_image_bytes: int
) -> tuple[float, float]:
    """
    Check a submission in order: image, image type, image size, price, duration.
    Returns the parsed (price, duration).
    """
    if not submission.filename or submission.data is None:
        raise ValidationError("image", "No image uploaded")
    validate_image(submission.filename, submission.content_type or "")
    if len(submission.data) > max_image_bytes:
        raise ValidationError(
            "image",
            "Image is too large (max %.1f MB)" % (max_image_bytes / (1024 * 1024)),
        )
    price = parse_non_negative("price", submission.price)
    duration = parse_non_negative(submission.duration_field, submission.duration)
    return price, duration


class IngestionPipeline:
    def __init__(
        self,
        blob_store: BlobStore,
        record_store: RecordStore,
        *,
        max_image_bytes: int,
    ):
        self.blob_store = blob_store
        self.record_store = record_store
        self.max_image_bytes = max_image_bytes

    def submit(self, submission: TattooSubmission) -> TattooRecord:
        price, duration = validate_submission(submission, self.max_image_bytes)
        tags = parse_tags(submission.tags)

        try:
            image_ref = self.blob_store.save(
                submission.data, submission.filename, submission.content_type or ""
            )
        except StorageError as exc:
            logger.error("Error storing image %s: %s", submission.filename, exc.cause or exc)
            raise

        record = TattooRecord(
            image_ref=image_ref, price=price, duration=duration, tags=tags
        )
        try:
            record.id = self.record_store.insert(record)
        except PersistenceError as exc:
            logger.error("Error saving tattoo data: %s", exc.cause or exc)
            self._discard_blob(image_ref)
            raise

        logger.info(
            "Saved tattoo %s (price=%.2f, duration=%s, %d tags)",
            record.id,
            price,
            duration,
            len(tags),
        )
        return record

    def _discard_blob(self, image_ref: str) -> None:
        try:
            self.blob_store.delete(image_ref)
        except StorageError as exc:
            logger.warning("Could not remove orphaned image %s: %s", image_ref, exc.cause or exc)
        else:
            logger.info("Removed orphaned image %s", image_ref)
