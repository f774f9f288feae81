"""Checkpointed batch upsert of parsed CSV rows."""
from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Callable, Dict, List, Optional, Sequence

from .checkpoints import CheckpointStore
from .errors import ImportEngineError
from .fields import EMAIL_KEY, kind_for
from .mapping import validate_mapping
from .models import (
    ErrorLogEntry,
    FieldMapping,
    ImportCheckpoint,
    ImportRunState,
    ParsedFile,
    RunStatus,
)
from .remote.base import Contact, ContactWriter

LOGGER = logging.getLogger(__name__)

BATCH_SIZE = 25
# Data rows are 0-based and the header occupies line 1 of the file.
HEADER_ROW_OFFSET = 2

ProgressCallback = Callable[[ImportRunState], None]


def build_contact(parsed: ParsedFile, row: Sequence[str], mapping: FieldMapping) -> Contact:
    """Apply ``mapping`` to one row, coercing every mapped value by its field kind."""

    contact: Dict[str, Any] = {}
    for key, header in mapping.items():
        index = parsed.column_index(header)
        if index < 0 or index >= len(row):
            continue
        contact[key] = kind_for(key).parse(row[index])
    return contact


class BatchProcessor:
    """Walks the rows of a file in fixed-size batches and writes each contact.

    The processor owns the :class:`ImportRunState` of its run. ``pause``,
    ``resume`` and ``cancel`` are the only transitions callable while a run
    is in flight; they are observed by the loop before each row.
    """

    def __init__(
        self,
        writer: ContactWriter,
        checkpoints: CheckpointStore,
        *,
        workspace_id: str,
        batch_size: int = BATCH_SIZE,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._writer = writer
        self._checkpoints = checkpoints
        self._workspace_id = workspace_id
        self._batch_size = batch_size
        self._progress_callback = progress_callback
        self._parsed: Optional[ParsedFile] = None
        self._mapping: FieldMapping = {}
        self._target_list_ids: List[str] = []
        self._released = asyncio.Event()
        self._released.set()
        self.state = ImportRunState()

    # ------------------------------------------------------------------
    @property
    def status(self) -> RunStatus:
        return self.state.status

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def mapping(self) -> FieldMapping:
        return dict(self._mapping)

    def total_batches(self, total_rows: int) -> int:
        return math.ceil(total_rows / self._batch_size)

    # ------------------------------------------------------------------
    async def start(
        self,
        parsed: ParsedFile,
        mapping: FieldMapping,
        target_list_ids: Sequence[str] = (),
        resume_from_row_index: int = 0,
    ) -> ImportRunState:
        """Run the import to a terminal status and return the final state.

        Raises :class:`ValidationError` without leaving ``Idle`` when the
        mapping has no usable email column.
        """

        if self.state.status in {RunStatus.RUNNING, RunStatus.PAUSED, RunStatus.CANCELLING}:
            raise ImportEngineError("An import is already in progress")
        if self.state.status.is_terminal:
            self.state.status = RunStatus.IDLE

        validated = validate_mapping(mapping, parsed.headers)

        start_row = resume_from_row_index
        if not 0 <= start_row <= parsed.total_rows:
            LOGGER.warning("Resume row %s is outside the file, starting from the first row", start_row)
            start_row = 0

        self._parsed = parsed
        self._mapping = validated
        self._target_list_ids = list(dict.fromkeys(target_list_ids))
        self._reset_state(parsed.total_rows, start_row)
        LOGGER.info(
            "Starting import of %s: %s rows in %s batches from row %s",
            parsed.file_name,
            parsed.total_rows,
            self.state.total_batches,
            start_row,
        )

        try:
            await self._run_batches()
        except asyncio.CancelledError:
            self.save_checkpoint()
            self.state.status = RunStatus.CANCELLED
            LOGGER.info("Import of %s interrupted at row %s", parsed.file_name, self.state.row_index)
            raise
        except Exception as exc:
            LOGGER.exception("Import of %s failed at row %s", parsed.file_name, self.state.row_index)
            self.state.fatal_error = str(exc) or exc.__class__.__name__
            self.state.status = RunStatus.FAILED
            self.save_checkpoint()
        finally:
            self._released.set()

        self._notify()
        return self.state

    def _reset_state(self, total_rows: int, start_row: int) -> None:
        state = self.state
        state.status = RunStatus.RUNNING
        state.row_index = start_row
        state.batch_number = self.total_batches(start_row)
        state.total_rows = total_rows
        state.total_batches = self.total_batches(total_rows)
        state.success_count = 0
        state.failure_count = 0
        state.error_log = []
        state.fatal_error = None
        self._released = asyncio.Event()
        self._released.set()

    # ------------------------------------------------------------------
    async def _run_batches(self) -> None:
        assert self._parsed is not None
        parsed = self._parsed
        state = self.state

        while state.row_index < state.total_rows and state.status is not RunStatus.CANCELLING:
            start = state.row_index
            end = min(start + self._batch_size, state.total_rows)
            state.batch_number = start // self._batch_size + 1
            LOGGER.debug("Processing batch %s/%s (rows %s-%s)", state.batch_number, state.total_batches, start, end)

            if not await self._process_batch(parsed, start, end):
                break

            state.row_index = end
            self.save_checkpoint()
            self._notify()
            # Let pause/cancel requests and other tasks run between batches.
            await asyncio.sleep(0)

        if state.status is RunStatus.CANCELLING:
            state.status = RunStatus.CANCELLED
            LOGGER.info("Import of %s cancelled at row %s", parsed.file_name, state.row_index)
        else:
            state.status = RunStatus.COMPLETED
            LOGGER.info(
                "Import of %s completed: %s imported, %s failed",
                parsed.file_name,
                state.success_count,
                state.failure_count,
            )

    async def _process_batch(self, parsed: ParsedFile, start: int, end: int) -> bool:
        """Submit rows ``[start, end)``. Returns ``False`` if the run was cancelled."""

        for absolute_index in range(start, end):
            if not await self._wait_while_paused():
                return False
            contact = build_contact(parsed, parsed.rows[absolute_index], self._mapping)
            if not contact.get(EMAIL_KEY):
                continue
            await self._submit(contact, absolute_index)
            self._notify()
        return True

    async def _wait_while_paused(self) -> bool:
        while self.state.status is RunStatus.PAUSED:
            await self._released.wait()
        return self.state.status is not RunStatus.CANCELLING

    async def _submit(self, contact: Contact, absolute_index: int) -> None:
        try:
            if self._target_list_ids:
                await self._writer.subscribe(self._workspace_id, contact, self._target_list_ids)
            else:
                await self._writer.upsert(self._workspace_id, contact)
        except Exception as exc:
            self._record_failure(contact, absolute_index, exc)
        else:
            self.state.success_count += 1

    def _record_failure(self, contact: Contact, absolute_index: int, exc: Exception) -> None:
        state = self.state
        state.failure_count += 1
        email = str(contact.get(EMAIL_KEY) or "Unknown")
        message = str(exc) or exc.__class__.__name__
        line_number = absolute_index + HEADER_ROW_OFFSET
        LOGGER.warning("Error upserting contact %s (line %s): %s", email, line_number, message)
        if not state.error_log_full:
            state.error_log.append(ErrorLogEntry(line_number=line_number, email=email, error_message=message))

    # ------------------------------------------------------------------
    def pause(self) -> bool:
        if self.state.status is not RunStatus.RUNNING:
            LOGGER.debug("Ignoring pause while %s", self.state.status.value)
            return False
        self.state.status = RunStatus.PAUSED
        self._released.clear()
        self.save_checkpoint()
        LOGGER.info("Import paused at row %s", self.state.row_index)
        self._notify()
        return True

    def resume(self) -> bool:
        if self.state.status is not RunStatus.PAUSED:
            LOGGER.debug("Ignoring resume while %s", self.state.status.value)
            return False
        self.state.status = RunStatus.RUNNING
        self._released.set()
        LOGGER.info("Import resumed at row %s", self.state.row_index)
        self._notify()
        return True

    def cancel(self) -> bool:
        if self.state.status not in {RunStatus.RUNNING, RunStatus.PAUSED}:
            LOGGER.debug("Ignoring cancel while %s", self.state.status.value)
            return False
        self.save_checkpoint()
        self.state.status = RunStatus.CANCELLING
        self._released.set()
        LOGGER.info("Cancellation requested at row %s", self.state.row_index)
        self._notify()
        return True

    # ------------------------------------------------------------------
    def snapshot(self) -> Optional[ImportCheckpoint]:
        if self._parsed is None:
            return None
        return ImportCheckpoint(
            file_name=self._parsed.file_name,
            current_row_index=self.state.row_index,
            total_rows=self.state.total_rows,
            current_batch_number=self.state.batch_number,
            total_batches=self.state.total_batches,
            mapping=dict(self._mapping),
            target_list_ids=list(self._target_list_ids),
        )

    def save_checkpoint(self) -> bool:
        snapshot = self.snapshot()
        if snapshot is None:
            return False
        return self._checkpoints.save(self._workspace_id, snapshot.file_name, snapshot)

    def _notify(self) -> None:
        if self._progress_callback:
            self._progress_callback(self.state)


__all__ = ["BATCH_SIZE", "BatchProcessor", "HEADER_ROW_OFFSET", "ProgressCallback", "build_contact"]
