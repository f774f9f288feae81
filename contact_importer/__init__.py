"""Resumable bulk contact import engine."""

from . import ingestion, models, remote  # noqa: F401
from .checkpoints import CheckpointStore, FileStorage, MemoryStorage  # noqa: F401
from .controls import ImportControls  # noqa: F401
from .errors import (  # noqa: F401
    ImportEngineError,
    PersistenceError,
    RowSubmissionError,
    RowTransformError,
    ValidationError,
)
from .events import CONTACTS_IMPORTED, EventBus  # noqa: F401
from .models import (  # noqa: F401
    ContactsImported,
    ErrorLogEntry,
    FieldMapping,
    ImportCheckpoint,
    ImportRunState,
    ParsedFile,
    RunStatus,
)
from .processor import BATCH_SIZE, BatchProcessor  # noqa: F401
from .session import ImportSession  # noqa: F401

__all__ = [
    "BATCH_SIZE",
    "BatchProcessor",
    "CONTACTS_IMPORTED",
    "CheckpointStore",
    "ContactsImported",
    "ErrorLogEntry",
    "EventBus",
    "FieldMapping",
    "FileStorage",
    "ImportCheckpoint",
    "ImportControls",
    "ImportEngineError",
    "ImportRunState",
    "ImportSession",
    "MemoryStorage",
    "ParsedFile",
    "PersistenceError",
    "RowSubmissionError",
    "RowTransformError",
    "RunStatus",
    "ValidationError",
    "ingestion",
    "remote",
]
