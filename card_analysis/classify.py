"""Row classification: genuine transactions versus noise rows.

Issuer exports interleave transactions with blank spacer rows, repeated
header rows (one per card or billing cycle) and subtotal/total lines. The
classifier decides, per row, which of these it is, using only the detected
layout's column map.

The summary heuristic is deliberately biased toward exclusion: a row with a
blank date, a merchant-like label and a numeric amount is treated as a
trailing total line, even though a genuine transaction with a missing date
looks the same.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from .layouts import Layout
from .models import RawRow
from .normalizers import parse_amount

# Merchant-column labels that mark a repeated header inside the data region.
HEADER_LABELS: frozenset[str] = frozenset({"שם בית עסק", "שם בית העסק"})

# Substrings (matched lower-cased) that mark subtotal and total lines.
SUMMARY_KEYWORDS: tuple[str, ...] = (
    'סה"כ',
    "סהכ",
    "סך הכל",
    "סכום כולל",
    "סיכום",
    "total",
    "sum",
    "כללי",
)


class RowKind(StrEnum):
    TRANSACTION = "transaction"
    EMPTY = "empty"
    HEADER = "header"
    SUMMARY = "summary"


def cell(row: RawRow, index: int | None) -> Any:
    """Cell at ``index``; ``None`` when the column is unmapped or out of range."""

    if index is None or index >= len(row):
        return None
    return row[index]


def cell_text(row: RawRow, index: int | None) -> str:
    value = cell(row, index)
    if value is None:
        return ""
    return str(value).strip()


def _has_summary_keyword(text: str) -> bool:
    lowered = text.lower()
    return any(k.lower() in lowered for k in SUMMARY_KEYWORDS)


def is_summary_row(row: RawRow, layout: Layout) -> bool:
    """True for subtotal/total lines.

    Either the merchant or the date cell contains a summary keyword, or the
    date is blank while the merchant is filled and the billing amount parses.
    """

    if not row:
        return False

    merchant = cell_text(row, layout.column("merchant"))
    raw_date = cell_text(row, layout.column("date"))

    if _has_summary_keyword(merchant) or _has_summary_keyword(raw_date):
        return True

    has_amount = parse_amount(cell(row, layout.column("billing_amount"))) is not None
    return not raw_date and has_amount and merchant != ""


def classify_row(row: RawRow, layout: Layout) -> RowKind:
    if not row:
        return RowKind.EMPTY
    merchant = cell_text(row, layout.column("merchant"))
    if not merchant:
        return RowKind.EMPTY
    if merchant in HEADER_LABELS:
        return RowKind.HEADER
    if is_summary_row(row, layout):
        return RowKind.SUMMARY
    return RowKind.TRANSACTION


def is_noise_row(row: RawRow, layout: Layout) -> bool:
    """True for blank rows, repeated headers and summary lines."""

    return classify_row(row, layout) is not RowKind.TRANSACTION


__all__ = [
    "HEADER_LABELS",
    "SUMMARY_KEYWORDS",
    "RowKind",
    "cell",
    "cell_text",
    "classify_row",
    "is_noise_row",
    "is_summary_row",
]
