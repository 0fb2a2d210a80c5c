"""Records produced by extraction and aggregation.

All records are frozen dataclasses: a transaction is created once by the
extractor and never mutated, and aggregates are recomputed from a full
transaction snapshot rather than updated in place.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, TypeAlias

from .normalizers import format_month

# A single sheet row as decoded by the spreadsheet reader.
RawRow: TypeAlias = Sequence[Any]

# The raw, unparsed date cell carried on each transaction.
RawDate: TypeAlias = str | int | float | date | datetime

# Label of the bucket that folds merchants ranked past the top N.
OTHER_MERCHANT = "Other"

# Notes marker identifying standing-order (recurring) charges.
RECURRING_MARKER = "הוראת קבע"


@dataclass(frozen=True, slots=True)
class NormalizedTransaction:
    """One transaction row mapped onto the common schema.

    ``date`` keeps the original cell value; it is parsed only when bucketing
    by month, so an unreadable date never costs a transaction.
    ``amount_in_home_currency`` equals ``billing_amount`` when the billing
    currency is the home currency or is not recognized.
    """

    date: RawDate
    merchant: str
    billing_amount: Decimal
    billing_currency: str
    amount_in_home_currency: Decimal
    source_format: str
    transaction_amount: Decimal | None = None
    transaction_currency: str = ""
    category: str = ""
    notes: str = ""
    receipt_number: str = ""
    card_number: str = ""
    billing_date: RawDate = ""

    @property
    def is_recurring(self) -> bool:
        return RECURRING_MARKER in self.notes

    @property
    def is_refund(self) -> bool:
        return self.billing_amount < 0


@dataclass(frozen=True, slots=True)
class ExtractionStats:
    """Per-file row accounting (operator diagnostics only)."""

    rows_scanned: int = 0
    empty: int = 0
    headers: int = 0
    summaries: int = 0
    malformed: int = 0
    extracted: int = 0

    @property
    def skipped(self) -> int:
        return self.empty + self.headers + self.summaries + self.malformed


@dataclass(frozen=True, slots=True)
class FileResult:
    """Outcome of processing one input file.

    ``error`` is set (and ``transactions`` empty) when the file could not be
    decoded or extracted; other files in the batch are unaffected.
    """

    file_name: str
    layout_id: str | None = None
    layout_name: str | None = None
    transactions: tuple[NormalizedTransaction, ...] = ()
    stats: ExtractionStats = field(default_factory=ExtractionStats)
    error: str | None = None

    @property
    def count(self) -> int:
        return len(self.transactions)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class MerchantAggregate:
    merchant: str
    total: Decimal


@dataclass(frozen=True, slots=True)
class MerchantBreakdown:
    """Merchants ranked by spend, with the tail folded into ``"Other"``.

    ``total`` and ``merchant_count`` cover every merchant, including the
    ones folded into the ``"Other"`` entry.
    """

    entries: tuple[MerchantAggregate, ...]
    total: Decimal
    merchant_count: int
    transaction_count: int
    folded_count: int = 0

    @property
    def has_other(self) -> bool:
        return self.folded_count > 0

    def share(self, entry: MerchantAggregate) -> Decimal:
        """Percentage of ``total`` represented by ``entry`` (0 when total is 0)."""

        if not self.total:
            return Decimal("0")
        return entry.total / self.total * 100


@dataclass(frozen=True, slots=True)
class MonthlyAggregate:
    month_key: str
    total: Decimal
    count: int

    @property
    def label(self) -> str:
        return format_month(self.month_key)


@dataclass(frozen=True, slots=True)
class MonthlySeries:
    """Chronological monthly totals for one merchant."""

    merchant: str
    buckets: tuple[MonthlyAggregate, ...]
    invalid_dates: int = 0

    @property
    def total(self) -> Decimal:
        return sum((b.total for b in self.buckets), Decimal("0"))


__all__ = [
    "OTHER_MERCHANT",
    "RECURRING_MARKER",
    "ExtractionStats",
    "FileResult",
    "MerchantAggregate",
    "MerchantBreakdown",
    "MonthlyAggregate",
    "MonthlySeries",
    "NormalizedTransaction",
    "RawDate",
    "RawRow",
]
