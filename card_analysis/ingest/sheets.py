"""Decode spreadsheet files into raw row lists.

Only the first worksheet of a workbook is read, with cached formula values
(``data_only=True``) so cells hold what the issuer displayed. Dates stored as
real date cells arrive as ``datetime`` values; everything else as ``str``,
``int``/``float`` or ``None``. CSV exports are read with the stdlib ``csv``
module and yield strings only.
"""

from __future__ import annotations

import csv
from os import PathLike
from pathlib import Path
from typing import Any

from openpyxl import load_workbook

from ..logging_setup import get_logger

_logger = get_logger("card_analysis.ingest.sheets")

WORKBOOK_SUFFIXES = frozenset({".xlsx", ".xlsm"})
CSV_SUFFIXES = frozenset({".csv"})
SUPPORTED_SUFFIXES = WORKBOOK_SUFFIXES | CSV_SUFFIXES


class SheetReadError(ValueError):
    """A file could not be decoded into rows."""

    def __init__(self, message: str, *, file_name: str | None = None) -> None:
        self.file_name = file_name
        super().__init__(f"{file_name}: {message}" if file_name else message)


def _read_workbook(path: Path) -> list[list[Any]]:
    # openpyxl reports damaged archives as zip, XML or schema errors of many
    # types; OSError (missing file, permissions) still propagates.
    try:
        wb = load_workbook(path, read_only=True, data_only=True)
    except OSError:
        raise
    except Exception as e:  # noqa: BLE001
        raise SheetReadError(f"not a readable workbook ({e})", file_name=path.name) from e

    try:
        if not wb.sheetnames:
            raise SheetReadError("workbook has no sheets", file_name=path.name)
        ws = wb[wb.sheetnames[0]]
        rows = [list(row) for row in ws.iter_rows(values_only=True)]
    except (SheetReadError, OSError):
        raise
    except Exception as e:  # noqa: BLE001
        raise SheetReadError(f"unreadable worksheet ({e})", file_name=path.name) from e
    finally:
        wb.close()
    return rows


def _read_csv(path: Path) -> list[list[Any]]:
    try:
        # utf-8-sig drops the BOM that spreadsheet tools put on CSV exports.
        with path.open(encoding="utf-8-sig", newline="") as f:
            return [list(row) for row in csv.reader(f)]
    except (UnicodeDecodeError, csv.Error) as e:
        raise SheetReadError(f"not a readable CSV file ({e})", file_name=path.name) from e


def read_sheet_rows(path: str | PathLike[str]) -> list[list[Any]]:
    """Return the rows of the first sheet in ``path``.

    Raises ``SheetReadError`` for unsupported or undecodable files and lets
    ``OSError`` (missing file, permissions) propagate.
    """

    p = Path(path)
    suffix = p.suffix.lower()
    if suffix in WORKBOOK_SUFFIXES:
        rows = _read_workbook(p)
    elif suffix in CSV_SUFFIXES:
        rows = _read_csv(p)
    else:
        raise SheetReadError(
            f"unsupported file type {suffix or '(none)'}; expected one of "
            + ", ".join(sorted(SUPPORTED_SUFFIXES)),
            file_name=p.name,
        )

    _logger.debug("read_sheet_rows:done file=%s rows=%d", p.name, len(rows))
    return rows


__all__ = ["SUPPORTED_SUFFIXES", "SheetReadError", "read_sheet_rows"]
