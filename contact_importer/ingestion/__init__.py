"""Reading contact files and writing import reports."""

from .exporters import error_log_to_dataframe, export_error_log  # noqa: F401
from .loaders import load_csv, parse_csv_text  # noqa: F401

__all__ = ["error_log_to_dataframe", "export_error_log", "load_csv", "parse_csv_text"]
