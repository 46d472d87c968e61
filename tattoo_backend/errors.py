"""
Error taxonomy for the tattoo data service.

Every error carries the HTTP status it maps to and knows how to render itself
as the JSON body returned by the API.
"""

from __future__ import annotations

from typing import Any, Optional


class TattooDataError(Exception):
    """Base exception for the service."""

    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.cause is not None:
            body["details"] = str(self.cause)
        return body


class ValidationError(TattooDataError):
    """A submitted field is missing or malformed."""

    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "field": self.field}


class StorageError(TattooDataError):
    """The blob store failed to write, delete or list an image."""


class PersistenceError(TattooDataError):
    """The record store failed to read or write."""


class NotFoundError(TattooDataError):
    status_code = 404

    def __init__(self, record_id: str):
        super().__init__(f"Tattoo not found: {record_id}")
        self.record_id = record_id
