"""
Custom exceptions for the autocrud system.

Storage backends raise StorageError with a code; builders remap those codes
into the domain errors below through storage_errors().
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional


# Storage error codes
UNIQUE_VIOLATION = "unique_violation"
RECORD_NOT_FOUND = "record_not_found"
CONSTRAINT_VIOLATION = "constraint_violation"
BACKEND_ERROR = "backend_error"


class AutoCrudError(Exception):
    """Base exception for all autocrud errors."""
    pass


class ValidationError(AutoCrudError):
    """Raised when required arguments are missing or malformed."""
    pass


class NotFoundError(AutoCrudError):
    """Raised when no record matches an identifier."""
    pass


class ConflictError(AutoCrudError):
    """Raised when the backend reports a uniqueness violation."""
    pass


class BackendError(AutoCrudError):
    """Raised for any other storage failure."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(message)


class MetadataError(AutoCrudError):
    """Raised when an entity or field is missing from the inferred metadata."""
    pass


class StorageError(AutoCrudError):
    """Raised by storage backends. Carries a backend-independent code."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


def normalize_message(message: str) -> str:
    """Collapse newlines so the message survives single-line transports."""
    return message.replace("\r\n", " ").replace("\n", " ").strip()


def classify_storage_error(error: StorageError, model_name: str) -> AutoCrudError:
    """Map a StorageError to the domain error the caller should see."""
    if error.code == UNIQUE_VIOLATION:
        return ConflictError(f"{model_name} already exists")
    if error.code == RECORD_NOT_FOUND:
        return NotFoundError(normalize_message(error.message) or f"{model_name} not found")
    return BackendError(normalize_message(error.message), code=error.code)


@contextmanager
def storage_errors(model_name: str) -> Iterator[None]:
    """
    Remap StorageError raised inside the block.

    Usage:
        with storage_errors("User"):
            return await backend.create("user", data)
    """
    try:
        yield
    except StorageError as e:
        raise classify_storage_error(e, model_name) from e
