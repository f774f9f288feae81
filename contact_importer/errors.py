"""Error taxonomy shared by the import engine components."""
from __future__ import annotations


class ImportEngineError(Exception):
    """Base class for all errors raised by the contact import engine."""


class ValidationError(ImportEngineError):
    """Raised when a run cannot start because the field mapping is unusable."""


class RowTransformError(ImportEngineError):
    """Raised by a field parser when a raw cell cannot be coerced.

    The row transform recovers from it by nulling the offending field.
    """


class RowSubmissionError(ImportEngineError):
    """Raised by a contact writer when the remote API rejects a contact."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(ImportEngineError):
    """Raised by storage backends when a checkpoint cannot be read or written."""


class UnsupportedFileTypeError(ValueError):
    """Raised when an unsupported file format is passed to the loader."""


class EmptyFileError(ImportEngineError):
    """Raised when an input file does not contain a header row."""


__all__ = [
    "ImportEngineError",
    "ValidationError",
    "RowTransformError",
    "RowSubmissionError",
    "PersistenceError",
    "UnsupportedFileTypeError",
    "EmptyFileError",
]
