"""Amount and date normalization for issuer spreadsheet cells.

Cells arrive as whatever the spreadsheet reader produced: strings (often with
thousands separators or currency marks), ints/floats, ``datetime`` values or
``None``. The helpers here turn them into ``Decimal`` amounts and
``datetime.date`` values, returning ``None`` when a cell cannot be read so
callers can count failures instead of aborting a whole file.

Date strings follow the issuers' day-first convention (``15/03/2024``,
``15.03.24``, ``15-03-2024``). Numeric cells are spreadsheet day serials.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from dateutil import parser as dateutil_parser

# Spreadsheet serial 0; serial 1 is 1899-12-31 under the 1900 leap-year quirk.
_SERIAL_EPOCH = datetime(1899, 12, 30)

MIN_YEAR = 2000
MAX_YEAR = 2100

_GENERIC_DEFAULTS = (datetime(MIN_YEAR, 1, 1), datetime(MIN_YEAR + 1, 1, 1))

_AMOUNT_JUNK_RE = re.compile(r"[^\d.\-]")
_AMOUNT_LEADING_RE = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")

_DAY_FIRST_RES = tuple(
    re.compile(rf"(\d{{1,2}}){sep}(\d{{1,2}}){sep}(\d{{4}}|\d{{2}})(?:[\sT].*)?")
    for sep in (r"/", r"\.", r"-")
)

_MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------


def parse_amount(value: Any) -> Decimal | None:
    """Parse a currency-formatted cell into a ``Decimal``.

    Grouping commas and any character other than a digit, ``.`` or ``-`` are
    stripped before parsing, so ``"₪ 1,234.56"`` reads as ``1234.56``. Returns
    ``None`` for empty cells and for text with no leading number; zero is a
    real amount and is returned as ``Decimal("0")``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        # str() keeps the shortest repr (12.1, not 12.0999999...).
        return Decimal(str(value))

    s = str(value).strip()
    if not s:
        return None
    cleaned = _AMOUNT_JUNK_RE.sub("", s.replace(",", ""))
    # Like a float parse: read the longest numeric prefix, ignore the rest.
    m = _AMOUNT_LEADING_RE.match(cleaned)
    if m is None:
        return None
    try:
        return Decimal(m.group(0))
    except InvalidOperation:
        return None


def format_amount(value: Decimal | float) -> str:
    """Format with thousands separators and two decimals (``1,234.56``)."""

    q = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{q:,.2f}"


def format_count(value: int | Decimal | float) -> str:
    """Format with thousands separators and no decimals (``1,234``)."""

    q = Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"{q:,.0f}"


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def _in_range(year: int) -> bool:
    return MIN_YEAR <= year <= MAX_YEAR


def _from_serial(serial: float) -> date | None:
    try:
        parsed = (_SERIAL_EPOCH + timedelta(days=serial)).date()
    except (OverflowError, ValueError):
        return None
    return parsed if _in_range(parsed.year) else None


def _from_day_first(s: str) -> date | None:
    for pattern in _DAY_FIRST_RES:
        m = pattern.fullmatch(s)
        if m is None:
            continue
        day, month, year = (int(g) for g in m.groups())
        if year < 100:
            year += 2000
        if not (1 <= day <= 31 and 1 <= month <= 12 and _in_range(year)):
            continue
        # date() refuses components that don't round-trip (e.g. 31/02).
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return None


def _from_generic(s: str) -> date | None:
    # Parsed against two defaults: a year taken from the default differs
    # between the runs and is rejected; missing month and day become 1.
    try:
        first, second = (dateutil_parser.parse(s, default=d) for d in _GENERIC_DEFAULTS)
    except (ValueError, OverflowError):
        return None
    if first != second:
        return None
    return first.date() if _in_range(first.year) else None


def parse_date(value: Any) -> date | None:
    """Resolve a raw date cell to a calendar date, or ``None``.

    Tried in order: ``date``/``datetime`` values, numeric spreadsheet serials,
    day-first ``D/M/Y``, ``D.M.Y`` and ``D-M-Y`` strings, then a generic
    parse. Serial, day-first and generic results must fall within
    ``[MIN_YEAR, MAX_YEAR]``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float, Decimal)):
        if isinstance(value, float) and value != value:  # NaN
            return None
        return _from_serial(float(value))

    s = str(value).strip()
    if not s:
        return None

    parsed = _from_day_first(s)
    if parsed is not None:
        return parsed
    return _from_generic(s)


def month_key(d: date) -> str:
    """Return the ``YYYY-MM`` bucket key for ``d``."""

    return f"{d.year:04d}-{d.month:02d}"


def format_month(key: str) -> str:
    """Render ``"2025-02"`` as ``"February 2025"``; malformed keys pass through."""

    if not key:
        return ""
    parts = key.split("-")
    if len(parts) != 2 or not parts[1].isdigit():
        return key
    idx = int(parts[1]) - 1
    if not 0 <= idx < 12:
        return key
    return f"{_MONTH_NAMES[idx]} {parts[0]}"


__all__ = [
    "MAX_YEAR",
    "MIN_YEAR",
    "format_amount",
    "format_count",
    "format_month",
    "month_key",
    "parse_amount",
    "parse_date",
]
