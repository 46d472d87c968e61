"""
Blob storage for uploaded tattoo images: local disk, S3-compatible hosting,
and an in-memory double for tests.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from tattoo_backend.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

ACCEPTED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif")
ACCEPTED_CONTENT_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/gif")


@dataclass
class BlobInfo:
    name: str
    path: str
    size: Optional[int] = None
    created: Optional[datetime] = None


class BlobStore(Protocol):
    """Defines the operations the service needs from image storage."""

    enumerable: bool

    @property
    def location(self) -> str:
        ...

    def save(self, data: bytes, filename: str, content_type: str) -> str:
        ...

    def delete(self, image_ref: str) -> bool:
        ...

    def list_blobs(self) -> Optional[list[BlobInfo]]:
        ...


def blob_name(image_ref: str) -> str:
    """Final path segment of an image reference, ignoring any query string."""
    path = urlparse(image_ref).path if "://" in image_ref else image_ref
    return path.split("?", 1)[0].rstrip("/").split("/")[-1]


def image_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


def validate_image(filename: str, content_type: str) -> str:
    """
    Check the extension and MIME type of an upload. Returns the extension.
    """
    ext = image_extension(filename)
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if ext not in ACCEPTED_EXTENSIONS or mime not in ACCEPTED_CONTENT_TYPES:
        raise ValidationError(
            "image",
            "Images only! Accepted types: %s" % ", ".join(ACCEPTED_EXTENSIONS),
        )
    return ext


def generate_blob_name(ext: str) -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"


@dataclass
class InMemoryBlobStore:
    """Test double for storage interactions."""

    url_prefix: str = "/uploads"
    stored_objects: dict = None
    enumerable: bool = True

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    @property
    def location(self) -> str:
        return "memory"

    def save(self, data: bytes, filename: str, content_type: str) -> str:
        ext = validate_image(filename, content_type)
        name = generate_blob_name(ext)
        self.stored_objects[name] = bytes(data)
        return f"{self.url_prefix}/{name}"

    def delete(self, image_ref: str) -> bool:
        return self.stored_objects.pop(blob_name(image_ref), None) is not None

    def list_blobs(self) -> list[BlobInfo]:
        return [
            BlobInfo(name=name, path=f"{self.url_prefix}/{name}", size=len(data))
            for name, data in self.stored_objects.items()
        ]


class LocalBlobStore:
    """
    Writes images under a local uploads directory that is served statically.
    """

    enumerable = True

    def __init__(self, root: str | Path, url_prefix: str = "/uploads"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        if not self.root.exists():
            logger.info("Creating uploads directory %s", self.root)
        self.root.mkdir(parents=True, exist_ok=True)

    @property
    def location(self) -> str:
        return str(self.root.resolve())

    def save(self, data: bytes, filename: str, content_type: str) -> str:
        ext = validate_image(filename, content_type)
        name = generate_blob_name(ext)
        try:
            (self.root / name).write_bytes(data)
        except OSError as exc:
            raise StorageError("Failed to write image to disk", cause=exc) from exc
        return f"{self.url_prefix}/{name}"

    def delete(self, image_ref: str) -> bool:
        name = blob_name(image_ref)
        if not name or name.startswith("."):
            return False
        path = self.root / name
        try:
            if not path.is_file():
                return False
            path.unlink()
        except OSError as exc:
            raise StorageError("Failed to delete image from disk", cause=exc) from exc
        return True

    def list_blobs(self) -> list[BlobInfo]:
        try:
            entries = sorted(self.root.iterdir())
        except OSError as exc:
            raise StorageError("Failed to list uploads directory", cause=exc) from exc
        blobs: list[BlobInfo] = []
        for entry in entries:
            if entry.name.startswith(".") or entry.name.endswith(".gitkeep"):
                continue
            if not entry.is_file():
                continue
            stats = entry.stat()
            blobs.append(
                BlobInfo(
                    name=entry.name,
                    path=f"{self.url_prefix}/{entry.name}",
                    size=stats.st_size,
                    created=datetime.fromtimestamp(stats.st_ctime, tz=timezone.utc),
                )
            )
        return blobs


@dataclass
class S3BlobStore:
    """
    S3-compatible hosted image storage. Objects live under a fixed folder and
    are referenced by their public HTTPS URL.
    """

    bucket: str
    access_key_id: str
    secret_access_key: str
    region: str = "us-east-1"
    endpoint: Optional[str] = None
    public_base_url: Optional[str] = None
    folder: str = "tattoo-images"
    enumerable: bool = field(default=False, init=False)

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    @property
    def location(self) -> str:
        return f"s3://{self.bucket}/{self.folder}"

    def _key(self, name: str) -> str:
        return f"{self.folder.strip('/')}/{name}"

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint:
            return f"{self.endpoint.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def save(self, data: bytes, filename: str, content_type: str) -> str:
        ext = validate_image(filename, content_type)
        key = self._key(generate_blob_name(ext))
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError("Failed to upload image to storage", cause=exc) from exc
        return self.public_url(key)

    def delete(self, image_ref: str) -> bool:
        name = blob_name(image_ref)
        if not name:
            return False
        try:
            self._client.delete_object(Bucket=self.bucket, Key=self._key(name))
        except (BotoCoreError, ClientError) as exc:
            raise StorageError("Failed to delete image from storage", cause=exc) from exc
        return True

    def list_blobs(self) -> None:
        # Hosted images are only known through the records that reference them.
        return None
