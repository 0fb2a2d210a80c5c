"""Public interface for the ``card_analysis`` package.

Re-exports the extraction pipeline, aggregation functions and record types as
the stable import surface. There is no runtime logic here, only symbol
re-exports.
"""

from .aggregation import by_merchant, by_month, exclude_merchants
from .classify import RowKind, classify_row, is_noise_row, is_summary_row
from .extraction import Extraction, extract, extract_transactions
from .layouts import (
    DEFAULT_LAYOUT,
    DEFAULT_REGISTRY,
    FORMAT_A,
    FORMAT_B,
    Layout,
    LayoutRegistry,
    detect_layout,
    load_layouts,
)
from .models import (
    OTHER_MERCHANT,
    ExtractionStats,
    FileResult,
    MerchantAggregate,
    MerchantBreakdown,
    MonthlyAggregate,
    MonthlySeries,
    NormalizedTransaction,
)
from .normalizers import parse_amount, parse_date
from .rates import RateTable, fallback_rate_table, fetch_rate_table
from .session import AnalysisSession

__all__ = [
    # Pipeline
    "detect_layout",
    "classify_row",
    "is_noise_row",
    "is_summary_row",
    "extract",
    "extract_transactions",
    "parse_amount",
    "parse_date",
    # Rates
    "RateTable",
    "fallback_rate_table",
    "fetch_rate_table",
    # Aggregation
    "by_merchant",
    "by_month",
    "exclude_merchants",
    "AnalysisSession",
    # Layouts
    "Layout",
    "LayoutRegistry",
    "DEFAULT_LAYOUT",
    "DEFAULT_REGISTRY",
    "FORMAT_A",
    "FORMAT_B",
    "load_layouts",
    # Models / types
    "RowKind",
    "Extraction",
    "ExtractionStats",
    "FileResult",
    "MerchantAggregate",
    "MerchantBreakdown",
    "MonthlyAggregate",
    "MonthlySeries",
    "NormalizedTransaction",
    "OTHER_MERCHANT",
]
