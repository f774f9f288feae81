"""Utilities for loading contact CSV files into a :class:`ParsedFile`."""
from __future__ import annotations

import io
import warnings
from pathlib import Path
from typing import Any, List, MutableMapping, Optional, Tuple, Union

import pandas as pd

from ..errors import EmptyFileError, UnsupportedFileTypeError
from ..models import PREVIEW_ROWS, ParsedFile

PathLike = Union[str, Path]

_SEPARATORS = {".csv": ",", ".tsv": "\t"}


def load_csv(
    path: PathLike,
    *,
    preview_size: int = PREVIEW_ROWS,
    loader_kwargs: Optional[MutableMapping[str, Any]] = None,
) -> ParsedFile:
    """Load a CSV (or TSV) file whose first row holds the column headers.

    Parameters
    ----------
    path:
        Path to the file. The file name is what checkpoints are keyed by.
    preview_size:
        Number of leading rows exposed as :attr:`ParsedFile.preview_rows`.
    loader_kwargs:
        Extra keyword arguments forwarded to :func:`pandas.read_csv`.
    """

    path_obj = Path(path)
    suffix = path_obj.suffix.lower()
    if suffix not in _SEPARATORS:
        raise UnsupportedFileTypeError(f"Unsupported file extension: {path_obj.suffix}")

    loader_kwargs = dict(loader_kwargs or {})
    loader_kwargs.setdefault("sep", _SEPARATORS[suffix])
    loader_kwargs.setdefault("encoding", "utf-8-sig")
    dataframe = _read_dataframe(path_obj, loader_kwargs)
    return _to_parsed_file(path_obj.name, dataframe, preview_size)


def parse_csv_text(
    file_name: str,
    text: str,
    *,
    sep: str = ",",
    preview_size: int = PREVIEW_ROWS,
) -> ParsedFile:
    """Parse CSV content that is already in memory."""

    dataframe = _read_dataframe(io.StringIO(text.lstrip("\ufeff")), {"sep": sep})
    return _to_parsed_file(file_name, dataframe, preview_size)


def _read_dataframe(source: Any, loader_kwargs: MutableMapping[str, Any]) -> pd.DataFrame:
    try:
        with warnings.catch_warnings():
            # Cells beyond the header width have no column to map onto.
            warnings.simplefilter("ignore", pd.errors.ParserWarning)
            dataframe = pd.read_csv(
                source,
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                engine="python",
                on_bad_lines=_keep_line,
                **loader_kwargs,
            )
    except pd.errors.EmptyDataError as exc:
        raise EmptyFileError("The CSV file appears to be empty or invalid.") from exc
    return dataframe.fillna("")


def _keep_line(line: List[str]) -> List[str]:
    return line


def _to_parsed_file(file_name: str, dataframe: pd.DataFrame, preview_size: int) -> ParsedFile:
    records = [_clean_row(values) for values in dataframe.itertuples(index=False, name=None)]
    if not records:
        raise EmptyFileError("The CSV file appears to be empty or invalid.")

    headers = records[0]
    width = len(headers)
    rows = tuple(_pad(row, width) for row in records[1:])
    return ParsedFile(file_name=file_name, headers=headers, rows=rows, preview_size=preview_size)


def _clean_row(values: Tuple[Any, ...]) -> Tuple[str, ...]:
    return tuple("" if value is None else str(value) for value in values)


def _pad(row: Tuple[str, ...], width: int) -> Tuple[str, ...]:
    if len(row) < width:
        return row + ("",) * (width - len(row))
    return row


__all__ = ["load_csv", "parse_csv_text"]
