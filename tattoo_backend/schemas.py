"""
Pydantic schemas for the tattoo data API. Field names follow the JSON the
front end consumes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class TattooResponse(BaseModel):
    id: str
    imageRef: str
    price: float
    duration: float
    durationUnit: Literal["hours", "minutes"]
    tags: list[str]
    createdAt: datetime


class CreateTattooResponse(BaseModel):
    success: Literal[True] = True
    record: TattooResponse


class DeleteTattooResponse(BaseModel):
    success: Literal[True] = True
    id: str


class ErrorResponse(BaseModel):
    error: str
    field: Optional[str] = None
    details: Optional[str] = None


class ServerInfo(BaseModel):
    environment: str
    storage: str
    uploadsPath: str
    enumerable: bool
    totalFiles: int


class ServerFile(BaseModel):
    name: str
    path: str
    size: Optional[int] = None
    created: Optional[datetime] = None
    used: bool


class MissingFileResponse(BaseModel):
    id: str
    url: str
    filename: str


class ServerFilesResponse(BaseModel):
    serverInfo: ServerInfo
    files: list[ServerFile]
    missingFiles: list[MissingFileResponse]


class UploadLimitsResponse(BaseModel):
    maxImageBytes: int
    acceptedTypes: list[str]
    acceptedExtensions: list[str]
    durationUnit: Literal["hours", "minutes"]
    durationField: str
