"""Data models shared by the contact import engine."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

PREVIEW_ROWS = 15
ERROR_LOG_CAPACITY = 100

# Contact attribute key -> CSV header.
FieldMapping = Dict[str, str]


# --- Parsed input ---

@dataclass(frozen=True)
class ParsedFile:
    """Headers and rows of one selected CSV file. Never mutated after parsing."""

    file_name: str
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...]
    preview_size: int = PREVIEW_ROWS

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    @property
    def preview_rows(self) -> Tuple[Tuple[str, ...], ...]:
        return self.rows[: self.preview_size]

    def has_header(self, header: Optional[str]) -> bool:
        return bool(header) and header in self.headers

    def column_index(self, header: str) -> int:
        """Return the index of the first column named ``header`` or ``-1``."""

        try:
            return self.headers.index(header)
        except ValueError:
            return -1

    def sample_values(self, header: str, limit: int = 3) -> List[str]:
        """Return the first non-blank values of a column, for the mapping screen."""

        index = self.column_index(header)
        if index < 0:
            return []
        samples: List[str] = []
        for row in self.rows:
            if len(samples) >= limit:
                break
            value = row[index].strip() if index < len(row) else ""
            if value:
                samples.append(value)
        return samples


# --- Persisted progress ---

@dataclass
class ImportCheckpoint:
    """Snapshot of import progress that lets a run resume after interruption."""

    file_name: str
    current_row_index: int
    total_rows: int
    current_batch_number: int
    total_batches: int
    mapping: FieldMapping = field(default_factory=dict)
    target_list_ids: List[str] = field(default_factory=list)
    saved_at_epoch_millis: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Serialise using the field names of the console's stored progress."""

        return {
            "fileName": self.file_name,
            "currentRow": self.current_row_index,
            "totalRows": self.total_rows,
            "currentBatch": self.current_batch_number,
            "totalBatches": self.total_batches,
            "mappings": dict(self.mapping),
            "selectedListIds": list(self.target_list_ids),
            "timestamp": self.saved_at_epoch_millis,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ImportCheckpoint":
        """Build a checkpoint from stored JSON, raising ``ValueError`` if malformed."""

        if not isinstance(data, Mapping):
            raise ValueError("checkpoint payload must be an object")

        file_name = data.get("fileName")
        mappings = data.get("mappings")
        list_ids = data.get("selectedListIds")
        if not isinstance(file_name, str):
            raise ValueError("fileName must be a string")
        if not isinstance(mappings, Mapping):
            raise ValueError("mappings must be an object")
        if not isinstance(list_ids, list):
            raise ValueError("selectedListIds must be a list")

        numbers = {}
        for key in ("currentRow", "totalRows", "currentBatch", "totalBatches", "timestamp"):
            value = data.get(key)
            # bool is an int subclass; a stored true/false is not a row number.
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{key} must be a number")
            if not math.isfinite(value):
                raise ValueError(f"{key} must be finite")
            numbers[key] = int(value)

        return cls(
            file_name=file_name,
            current_row_index=numbers["currentRow"],
            total_rows=numbers["totalRows"],
            current_batch_number=numbers["currentBatch"],
            total_batches=numbers["totalBatches"],
            mapping={str(key): value for key, value in mappings.items() if isinstance(value, str) and value},
            target_list_ids=[str(list_id) for list_id in list_ids],
            saved_at_epoch_millis=numbers["timestamp"],
        )


# --- Run state ---

class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {RunStatus.CANCELLED, RunStatus.COMPLETED, RunStatus.FAILED}


@dataclass(frozen=True)
class ErrorLogEntry:
    """One rejected row, as shown to the operator."""

    line_number: int
    email: str
    error_message: str


@dataclass
class ImportRunState:
    """In-memory progress of a single run. Mutated only by the batch processor."""

    status: RunStatus = RunStatus.IDLE
    row_index: int = 0
    batch_number: int = 0
    total_rows: int = 0
    total_batches: int = 0
    success_count: int = 0
    failure_count: int = 0
    error_log: List[ErrorLogEntry] = field(default_factory=list)
    error_log_capacity: int = ERROR_LOG_CAPACITY
    fatal_error: Optional[str] = None

    @property
    def progress_percent(self) -> int:
        if self.total_rows <= 0:
            return 100 if self.status is RunStatus.COMPLETED else 0
        return min(round(self.row_index / self.total_rows * 100), 100)

    @property
    def error_log_full(self) -> bool:
        return len(self.error_log) >= self.error_log_capacity

    def summary(self) -> str:
        """Return the operator-facing progress readout."""

        return (
            f"batch {self.batch_number}/{self.total_batches}, "
            f"row {self.row_index}/{self.total_rows}, "
            f"{self.success_count} imported, {self.failure_count} failed"
        )


# --- Events ---

@dataclass(frozen=True)
class ContactsImported:
    """Payload broadcast once an import completes."""

    success_count: int
    failure_count: int
    workspace_id: str


__all__ = [
    "ContactsImported",
    "ERROR_LOG_CAPACITY",
    "ErrorLogEntry",
    "FieldMapping",
    "ImportCheckpoint",
    "ImportRunState",
    "PREVIEW_ROWS",
    "ParsedFile",
    "RunStatus",
]
