"""Command line interface for importing a contacts CSV into a workspace."""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Callable, Optional

from .checkpoints import CheckpointStore
from .config import ConfigurationError, ImporterSettings, load_settings
from .errors import EmptyFileError, UnsupportedFileTypeError, ValidationError
from .events import CONTACTS_IMPORTED
from .factory import build_checkpoint_store, build_writer
from .ingestion.exporters import export_error_log
from .models import ContactsImported, ImportCheckpoint, ImportRunState, RunStatus
from .remote.rate_limit import RateLimitedWriter
from .session import ImportSession

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_USAGE = 2


def build_parser(prog: Optional[str] = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description="Import contacts from a CSV file into a workspace")
    parser.add_argument("input", help="Path to the CSV (or TSV) file to import")
    parser.add_argument("--workspace", required=True, help="Workspace the contacts belong to")
    parser.add_argument(
        "--config",
        help="Path to the importer configuration file (YAML or JSON). Defaults to $CONTACT_IMPORTER_CONFIG",
    )
    parser.add_argument(
        "--list",
        dest="lists",
        action="append",
        default=[],
        metavar="LIST_ID",
        help="Subscribe imported contacts to this list (repeatable)",
    )
    parser.add_argument(
        "--map",
        dest="mappings",
        action="append",
        default=[],
        metavar="FIELD=COLUMN",
        help="Map a contact field to a CSV column, overriding the suggestion (repeatable). Use FIELD= to unmap",
    )
    choice = parser.add_mutually_exclusive_group()
    choice.add_argument("--resume", action="store_true", help="Resume saved progress without asking")
    choice.add_argument("--fresh", action="store_true", help="Discard saved progress without asking")
    parser.add_argument("--dry-run", action="store_true", help="Validate and transform rows without calling the API")
    parser.add_argument("--errors-out", help="Write rejected rows to this CSV or XLSX file")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (e.g. DEBUG, INFO, WARNING)",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _ask_resume(checkpoint: ImportCheckpoint) -> bool:
    prompt = (
        f"A previous upload for '{checkpoint.file_name}' stopped at row "
        f"{checkpoint.current_row_index} of {checkpoint.total_rows}. Resume? [Y/n] "
    )
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in {"", "y", "yes"}


def _progress_logger() -> Callable[[ImportRunState], None]:
    last_row = {"value": -1}

    def report(state: ImportRunState) -> None:
        if state.row_index != last_row["value"]:
            last_row["value"] = state.row_index
            LOGGER.info("Progress %s%%: %s", state.progress_percent, state.summary())

    return report


def _apply_mappings(session: ImportSession, mappings: list[str]) -> None:
    for item in mappings:
        key, separator, header = item.partition("=")
        if not separator:
            raise ValidationError(f"Invalid mapping '{item}', expected FIELD=COLUMN")
        session.set_mapping(key.strip(), header or None)


async def _run_session(
    args: argparse.Namespace,
    settings: ImporterSettings,
    writer: RateLimitedWriter,
    store: CheckpointStore,
    *,
    ask_resume: Callable[[ImportCheckpoint], bool] = _ask_resume,
) -> int:
    session = ImportSession(
        args.workspace,
        writer,
        store,
        batch_size=settings.batch_size,
        target_list_ids=args.lists,
        progress_callback=_progress_logger(),
    )

    def on_imported(event: ContactsImported) -> None:
        LOGGER.info(
            "Imported %s contacts into %s (%s failed)",
            event.success_count,
            event.workspace_id,
            event.failure_count,
        )

    session.events.subscribe(CONTACTS_IMPORTED, on_imported)

    try:
        saved = session.open_file(args.input)
        if saved is not None:
            if args.resume or (not args.fresh and ask_resume(saved)):
                session.accept_resume()
                if args.lists:
                    session.set_target_lists(args.lists)
            else:
                session.start_fresh()
        _apply_mappings(session, args.mappings)
        if not session.is_runnable:
            raise ValidationError("Email field mapping is required, pass --map email=COLUMN")
    except (FileNotFoundError, UnsupportedFileTypeError, EmptyFileError, ValidationError) as exc:
        LOGGER.error("%s", exc)
        return EXIT_USAGE

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.controls.cancel)
    except (NotImplementedError, RuntimeError):  # pragma: no cover - platform specific
        LOGGER.debug("Signal handlers are not supported, Ctrl+C will interrupt without a final checkpoint")

    try:
        state = await session.start()
    except ValidationError as exc:
        LOGGER.error("%s", exc)
        return EXIT_USAGE
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - platform specific
            pass

    for entry in state.error_log:
        LOGGER.warning("Line %s (%s): %s", entry.line_number, entry.email, entry.error_message)
    if args.errors_out and state.error_log:
        path = export_error_log(state.error_log, args.errors_out)
        LOGGER.info("Rejected rows written to %s", Path(path).resolve())

    if state.status is RunStatus.COMPLETED:
        return EXIT_OK
    if state.status is RunStatus.FAILED:
        LOGGER.error("Import failed: %s", state.fatal_error)
    else:
        LOGGER.warning("Import %s at row %s, rerun to resume", state.status.value, state.row_index)
    return EXIT_RUN_FAILED


async def run_import(
    args: argparse.Namespace,
    settings: ImporterSettings,
    writer: RateLimitedWriter,
    store: CheckpointStore,
    *,
    ask_resume: Callable[[ImportCheckpoint], bool] = _ask_resume,
) -> int:
    """Run one import from the parsed command line and return the exit code."""

    try:
        return await _run_session(args, settings, writer, store, ask_resume=ask_resume)
    finally:
        await writer.aclose()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        settings = load_settings(args.config)
        writer = build_writer(settings, dry_run=args.dry_run)
        store = build_checkpoint_store(settings)
    except ConfigurationError as exc:
        logging.error("Configuration error: %s", exc)
        return EXIT_USAGE

    return asyncio.run(run_import(args, settings, writer, store))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
