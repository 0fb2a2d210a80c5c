"""Sheet rows → :class:`~card_analysis.models.NormalizedTransaction` records.

The extractor drives the pipeline for one sheet:

1. detect the layout once for the whole row set;
2. walk rows from the layout's data start, classifying each one;
3. map the surviving rows' columns onto the common schema;
4. convert the billing amount to the home currency via the rate table.

Rows whose billing amount cannot be parsed are dropped and counted as
``malformed``; they are reported only through :class:`ExtractionStats` and
the operator log. Dates are carried through unparsed.

Extraction is a pure function of ``(rows, rates, registry)``: no state is
kept between calls.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from .classify import RowKind, cell, cell_text, classify_row
from .layouts import Layout, LayoutRegistry, detect_layout
from .logging_setup import get_logger
from .models import ExtractionStats, NormalizedTransaction, RawRow
from .normalizers import parse_amount
from .rates import RateTable

_logger = get_logger("card_analysis.extraction")


@dataclass(frozen=True, slots=True)
class Extraction:
    """Result of extracting one sheet."""

    layout: Layout
    transactions: tuple[NormalizedTransaction, ...]
    stats: ExtractionStats


def _raw_date(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return value


def _to_transaction(
    row: RawRow, layout: Layout, rates: RateTable
) -> NormalizedTransaction | None:
    col = layout.column

    merchant = cell_text(row, col("merchant"))
    billing_amount = parse_amount(cell(row, col("billing_amount")))
    if not merchant or billing_amount is None:
        return None

    billing_currency = cell_text(row, col("billing_currency"))
    notes = cell_text(row, col("additional_details")) or cell_text(row, col("notes"))

    return NormalizedTransaction(
        date=_raw_date(cell(row, col("date"))),
        merchant=merchant,
        billing_amount=billing_amount,
        billing_currency=billing_currency,
        amount_in_home_currency=rates.convert(billing_amount, billing_currency),
        source_format=layout.id,
        transaction_amount=parse_amount(cell(row, col("transaction_amount"))),
        transaction_currency=cell_text(row, col("transaction_currency")),
        category=cell_text(row, col("category")),
        notes=notes,
        receipt_number=cell_text(row, col("receipt_number")),
        card_number=cell_text(row, col("card_number")),
        billing_date=_raw_date(cell(row, col("billing_date"))),
    )


def extract(
    rows: Sequence[RawRow],
    rates: RateTable,
    *,
    registry: LayoutRegistry | None = None,
) -> Extraction:
    """Detect the layout of ``rows`` and extract its transactions with row stats."""

    layout = detect_layout(rows, registry)
    _logger.info(
        "extract:layout_detected layout=%s name=%r header_row=%d data_start=%d",
        layout.id,
        layout.display_name,
        layout.header_row_index,
        layout.data_start_row_index,
    )

    counts = {kind: 0 for kind in RowKind}
    malformed = 0
    transactions: list[NormalizedTransaction] = []

    data_rows = rows[layout.data_start_row_index :]
    for offset, row in enumerate(data_rows):
        row = row or ()
        kind = classify_row(row, layout)
        if kind is not RowKind.TRANSACTION:
            counts[kind] += 1
            if kind is RowKind.SUMMARY:
                _logger.debug(
                    "extract:summary_row_skipped row=%d merchant=%r",
                    layout.data_start_row_index + offset,
                    cell_text(row, layout.column("merchant")),
                )
            continue

        tx = _to_transaction(row, layout, rates)
        if tx is None:
            malformed += 1
            _logger.debug(
                "extract:malformed_row_skipped row=%d amount=%r",
                layout.data_start_row_index + offset,
                cell(row, layout.column("billing_amount")),
            )
            continue
        transactions.append(tx)

    stats = ExtractionStats(
        rows_scanned=len(data_rows),
        empty=counts[RowKind.EMPTY],
        headers=counts[RowKind.HEADER],
        summaries=counts[RowKind.SUMMARY],
        malformed=malformed,
        extracted=len(transactions),
    )
    _logger.info(
        (
            "extract:done layout=%s extracted=%d empty=%d headers=%d "
            "summaries=%d malformed=%d"
        ),
        layout.id,
        stats.extracted,
        stats.empty,
        stats.headers,
        stats.summaries,
        stats.malformed,
    )
    return Extraction(layout=layout, transactions=tuple(transactions), stats=stats)


def extract_transactions(
    rows: Sequence[RawRow],
    rates: RateTable,
    *,
    registry: LayoutRegistry | None = None,
) -> list[NormalizedTransaction]:
    """Extract normalized transactions from one sheet's rows."""

    return list(extract(rows, rates, registry=registry).transactions)


__all__ = ["Extraction", "extract", "extract_transactions"]
