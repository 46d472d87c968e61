"""
Read-only cross-check between stored images and tattoo records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from tattoo_backend.db import TattooRecord
from tattoo_backend.storage import BlobInfo, blob_name


@dataclass
class FileUsage:
    blob: BlobInfo
    used: bool


@dataclass
class MissingFile:
    id: str
    url: str
    filename: str


@dataclass
class ReconciliationReport:
    files: list[FileUsage] = field(default_factory=list)
    missing_files: list[MissingFile] = field(default_factory=list)
    enumerable: bool = True

    @property
    def unused(self) -> list[BlobInfo]:
        return [usage.blob for usage in self.files if not usage.used]


def reconcile(
    records: Iterable[TattooRecord], blobs: Optional[list[BlobInfo]]
) -> ReconciliationReport:
    """
    Flag each blob as used or unused and list records whose image is missing.

    When blobs is None the store cannot be enumerated, so the blob list is
    derived from the records themselves and nothing can be reported missing.
    """
    records = list(records)
    if blobs is None:
        seen: dict[str, FileUsage] = {}
        for record in records:
            name = blob_name(record.image_ref)
            seen.setdefault(
                name, FileUsage(blob=BlobInfo(name=name, path=record.image_ref), used=True)
            )
        return ReconciliationReport(files=list(seen.values()), enumerable=False)

    used_names = {blob_name(record.image_ref) for record in records}
    stored_names = {blob.name for blob in blobs}
    files = [FileUsage(blob=blob, used=blob.name in used_names) for blob in blobs]
    missing = [
        MissingFile(id=record.id, url=record.image_ref, filename=blob_name(record.image_ref))
        for record in records
        if blob_name(record.image_ref) not in stored_names
    ]
    return ReconciliationReport(files=files, missing_files=missing)
