"""Export of rejected rows so operators can fix and re-import them."""
from __future__ import annotations

from pathlib import Path
from typing import MutableMapping, Optional, Sequence, Union

import pandas as pd

from ..models import ErrorLogEntry

PathLike = Union[str, Path]

ERROR_COLUMNS = ["line", "email", "error"]


def error_log_to_dataframe(entries: Sequence[ErrorLogEntry]) -> pd.DataFrame:
    """Convert error log entries into a :class:`pandas.DataFrame`."""

    records = [
        {"line": entry.line_number, "email": entry.email, "error": entry.error_message}
        for entry in entries
    ]
    return pd.DataFrame(records, columns=ERROR_COLUMNS)


def export_error_log(
    entries: Sequence[ErrorLogEntry],
    path: PathLike,
    *,
    sheet_name: str = "Errors",
    exporter_kwargs: Optional[MutableMapping[str, object]] = None,
) -> Path:
    """Write the error log to a CSV, TSV or Excel file."""

    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    _write_dataframe(
        error_log_to_dataframe(entries),
        output_path,
        sheet_name=sheet_name,
        exporter_kwargs=exporter_kwargs,
    )
    return output_path


def _write_dataframe(
    dataframe: pd.DataFrame,
    path: Path,
    *,
    sheet_name: str,
    exporter_kwargs: Optional[MutableMapping[str, object]],
) -> None:
    exporter_kwargs = dict(exporter_kwargs or {})
    suffix = path.suffix.lower()

    if suffix in {".csv", ".tsv"}:
        if suffix == ".tsv":
            exporter_kwargs.setdefault("sep", "\t")
        dataframe.to_csv(path, index=False, **exporter_kwargs)
        return

    if suffix in {".xlsx", ".xlsm"}:
        engine = exporter_kwargs.pop("engine", None) or "openpyxl"
        dataframe.to_excel(path, index=False, sheet_name=sheet_name, engine=engine, **exporter_kwargs)
        return

    raise ValueError(f"Unsupported export file extension: {suffix}")


__all__ = ["ERROR_COLUMNS", "error_log_to_dataframe", "export_error_log"]
