"""Sequential multi-file processing with per-file failure isolation.

Files are decoded and extracted one at a time. A file that cannot be read
or extracted becomes an error :class:`~card_analysis.models.FileResult`;
the batch moves on, and results already produced are kept.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from os import PathLike
from pathlib import Path

from ..extraction import extract
from ..layouts import LayoutRegistry
from ..logging_setup import get_logger
from ..models import FileResult, NormalizedTransaction, RawRow
from ..rates import RateTable
from .sheets import SheetReadError, read_sheet_rows

_logger = get_logger("card_analysis.ingest.batch")


def process_rows(
    file_name: str,
    rows: Sequence[RawRow],
    rates: RateTable,
    *,
    registry: LayoutRegistry | None = None,
) -> FileResult:
    """Extract already-decoded rows into a :class:`FileResult`."""

    extraction = extract(rows, rates, registry=registry)
    return FileResult(
        file_name=file_name,
        layout_id=extraction.layout.id,
        layout_name=extraction.layout.display_name,
        transactions=extraction.transactions,
        stats=extraction.stats,
    )


def process_file(
    path: str | PathLike[str],
    rates: RateTable,
    *,
    registry: LayoutRegistry | None = None,
) -> FileResult:
    """Read and extract one file; read and extraction failures become error results."""

    p = Path(path)
    try:
        rows = read_sheet_rows(p)
    except SheetReadError as e:
        _logger.error("batch:file_failed file=%s error=%s", p.name, e)
        return FileResult(file_name=p.name, error=f"Failed to parse {p.name}: {e}")
    except OSError as e:
        _logger.error("batch:file_failed file=%s error=%s", p.name, e)
        return FileResult(file_name=p.name, error=f"Failed to read {p.name}: {e}")
    except Exception as e:  # noqa: BLE001 - one bad file must not abort the batch
        _logger.error(
            "batch:file_failed file=%s error=%s", p.name, e.__class__.__name__, exc_info=True
        )
        return FileResult(file_name=p.name, error=f"Failed to parse {p.name}: {e}")

    try:
        result = process_rows(p.name, rows, rates, registry=registry)
    except Exception as e:  # noqa: BLE001 - one bad file must not abort the batch
        _logger.error(
            "batch:file_failed file=%s error=%s", p.name, e.__class__.__name__, exc_info=True
        )
        return FileResult(file_name=p.name, error=f"Failed to parse {p.name}: {e}")

    _logger.info(
        "batch:file_done file=%s layout=%s count=%d", p.name, result.layout_id, result.count
    )
    return result


def process_files(
    paths: Iterable[str | PathLike[str]],
    rates: RateTable,
    *,
    registry: LayoutRegistry | None = None,
) -> list[FileResult]:
    """Process ``paths`` in order, one file fully before the next."""

    return [process_file(p, rates, registry=registry) for p in paths]


def all_transactions(results: Iterable[FileResult]) -> list[NormalizedTransaction]:
    """Concatenate the transactions of successful results, in order."""

    return [tx for r in results if r.ok for tx in r.transactions]


def failed_files(results: Iterable[FileResult]) -> list[str]:
    return [r.file_name for r in results if not r.ok]


__all__ = [
    "all_transactions",
    "failed_files",
    "process_file",
    "process_files",
    "process_rows",
]
