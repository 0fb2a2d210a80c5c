"""File decoding and batch processing around the extraction core."""

from .batch import all_transactions, failed_files, process_file, process_files, process_rows
from .sheets import SUPPORTED_SUFFIXES, SheetReadError, read_sheet_rows

__all__ = [
    "SUPPORTED_SUFFIXES",
    "SheetReadError",
    "all_transactions",
    "failed_files",
    "process_file",
    "process_files",
    "process_rows",
    "read_sheet_rows",
]
