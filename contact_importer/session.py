"""Import session that takes one file from selection to completion."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .checkpoints import CheckpointStore
from .controls import ImportControls
from .errors import ValidationError
from .events import CONTACTS_IMPORTED, EventBus
from .fields import EMAIL_KEY
from .ingestion.loaders import load_csv, parse_csv_text
from .mapping import filter_mapping, is_runnable, set_mapping, suggest_mapping
from .models import ContactsImported, FieldMapping, ImportCheckpoint, ImportRunState, ParsedFile, RunStatus
from .processor import BATCH_SIZE, BatchProcessor, ProgressCallback
from .remote.base import ContactWriter

LOGGER = logging.getLogger(__name__)


class ImportSession:
    """Coordinates parsing, mapping, checkpoint restore and the batch run.

    Typical flow::

        session = ImportSession("ws_1", writer, store)
        saved = session.open_file("contacts.csv")
        if saved is not None:
            session.accept_resume()   # or session.start_fresh()
        session.set_mapping("first_name", "Given name")
        state = await session.run()
    """

    def __init__(
        self,
        workspace_id: str,
        writer: ContactWriter,
        checkpoints: CheckpointStore,
        *,
        events: Optional[EventBus] = None,
        batch_size: int = BATCH_SIZE,
        target_list_ids: Sequence[str] = (),
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        self.workspace_id = workspace_id
        self.events = events or EventBus()
        self._checkpoints = checkpoints
        self.processor = BatchProcessor(
            writer,
            checkpoints,
            workspace_id=workspace_id,
            batch_size=batch_size,
            progress_callback=progress_callback,
        )
        self.controls = ImportControls(self.processor)
        self.parsed: Optional[ParsedFile] = None
        self.mapping: FieldMapping = {}
        self.target_list_ids: List[str] = list(target_list_ids)
        self.pending_checkpoint: Optional[ImportCheckpoint] = None
        self.resume_row_index = 0
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    @property
    def state(self) -> ImportRunState:
        return self.processor.state

    @property
    def headers(self) -> Sequence[str]:
        return self.parsed.headers if self.parsed else ()

    @property
    def is_runnable(self) -> bool:
        return self.parsed is not None and is_runnable(self.mapping, self.parsed.headers)

    # ------------------------------------------------------------------
    def open_file(self, path: str | Path) -> Optional[ImportCheckpoint]:
        """Parse ``path`` and return saved progress for it, if any."""

        return self.use_parsed(load_csv(path))

    def open_text(self, file_name: str, text: str) -> Optional[ImportCheckpoint]:
        return self.use_parsed(parse_csv_text(file_name, text))

    def use_parsed(self, parsed: ParsedFile) -> Optional[ImportCheckpoint]:
        """Replace the current file and seed the mapping from its headers."""

        if self.controls.is_active:
            raise ValidationError("Cannot select a new file while an import is running")

        self.parsed = parsed
        self.mapping = suggest_mapping(parsed.headers)
        self.resume_row_index = 0
        self.pending_checkpoint = self._checkpoints.load(self.workspace_id, parsed.file_name)
        LOGGER.info(
            "Loaded %s: %s rows, %s of %s columns auto-mapped",
            parsed.file_name,
            parsed.total_rows,
            len(self.mapping),
            len(parsed.headers),
        )
        if self.pending_checkpoint is not None:
            LOGGER.info(
                "Found saved progress for %s at row %s/%s",
                parsed.file_name,
                self.pending_checkpoint.current_row_index,
                self.pending_checkpoint.total_rows,
            )
        return self.pending_checkpoint

    def accept_resume(self) -> List[str]:
        """Restore mapping, target lists and row position from the saved checkpoint.

        Returns the attribute keys whose saved column no longer exists. When
        ``email`` is among them the session is not runnable until it is
        mapped again.
        """

        checkpoint = self._require_pending()
        assert self.parsed is not None
        kept, dropped = filter_mapping(checkpoint.mapping, self.parsed.headers)
        self.mapping = kept
        self.target_list_ids = list(checkpoint.target_list_ids)

        if checkpoint.current_row_index < self.parsed.total_rows:
            self.resume_row_index = checkpoint.current_row_index
        else:
            LOGGER.warning("Saved row %s is beyond the end of the file", checkpoint.current_row_index)
            self.resume_row_index = 0

        if dropped:
            LOGGER.warning("Saved mappings for %s refer to missing columns", ", ".join(sorted(dropped)))
        if EMAIL_KEY in dropped or EMAIL_KEY not in kept:
            LOGGER.warning("Email mapping from previous session is invalid for this CSV, map it before starting")
        self.pending_checkpoint = None
        return dropped

    def start_fresh(self) -> None:
        """Discard saved progress and go back to the suggested mapping."""

        parsed = self._require_parsed()
        self._checkpoints.clear(self.workspace_id, parsed.file_name)
        self.mapping = suggest_mapping(parsed.headers)
        self.resume_row_index = 0
        self.pending_checkpoint = None

    def set_mapping(self, key: str, header: Optional[str]) -> FieldMapping:
        parsed = self._require_parsed()
        if header and header not in parsed.headers:
            raise ValidationError(f"'{header}' is not a column of {parsed.file_name}")
        return set_mapping(self.mapping, key, header)

    def set_target_lists(self, list_ids: Sequence[str]) -> None:
        self.target_list_ids = list(dict.fromkeys(list_ids))

    # ------------------------------------------------------------------
    async def run(self) -> ImportRunState:
        """Run the import and handle completion bookkeeping."""

        parsed = self._require_parsed()
        if self.pending_checkpoint is not None:
            raise ValidationError("Choose whether to resume the previous upload or start fresh")

        state = await self.processor.start(
            parsed,
            self.mapping,
            self.target_list_ids,
            resume_from_row_index=self.resume_row_index,
        )

        if state.status is RunStatus.COMPLETED:
            self._checkpoints.clear(self.workspace_id, parsed.file_name)
            self.resume_row_index = 0
            self.events.publish(
                CONTACTS_IMPORTED,
                ContactsImported(
                    success_count=state.success_count,
                    failure_count=state.failure_count,
                    workspace_id=self.workspace_id,
                ),
            )
        else:
            self.resume_row_index = state.row_index if state.row_index < parsed.total_rows else 0
        return state

    def start(self) -> "asyncio.Task[ImportRunState]":
        """Schedule :meth:`run` on the running event loop and return its task."""

        if self._task is not None and not self._task.done():
            raise ValidationError("An import is already in progress")
        self._task = asyncio.create_task(self.run())
        return self._task

    async def close(self, confirm: Optional[Callable[[], bool]] = None) -> bool:
        """Close the session, cancelling an active run after confirmation.

        Returns ``False`` if the operator declined to stop a running import.
        """

        if self.controls.is_active:
            if confirm is not None and not confirm():
                return False
            self.processor.save_checkpoint()
            self.controls.cancel()
            if self._task is not None:
                await self._task
        self._task = None
        self.parsed = None
        self.mapping = {}
        self.pending_checkpoint = None
        self.resume_row_index = 0
        return True

    # ------------------------------------------------------------------
    def _require_parsed(self) -> ParsedFile:
        if self.parsed is None:
            raise ValidationError("No CSV data available")
        return self.parsed

    def _require_pending(self) -> ImportCheckpoint:
        self._require_parsed()
        if self.pending_checkpoint is None:
            raise ValidationError("There is no saved progress to resume")
        return self.pending_checkpoint


__all__ = ["ImportSession"]
