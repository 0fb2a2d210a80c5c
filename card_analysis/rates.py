"""Currency rates: symbol lookup, conversion to ILS, live fetch with fallback.

The extractor only depends on :meth:`RateTable.convert`. How the table was
obtained (live endpoint or the fixed fallback) is recorded on the table for
display but never changes conversion semantics:

- billing currency empty, ``₪`` or ``ILS``: amount is already in ILS;
- ``$``/``USD``, ``€``/``EUR``, ``£``/``GBP``: multiplied by the table rate;
- anything else, or a code without a rate: passed through unchanged.

:func:`fetch_rate_table` never raises: network, HTTP, JSON and validation
failures all degrade to :func:`fallback_rate_table` with a warning.
"""

from __future__ import annotations

import json
import os
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Literal

from pydantic import BaseModel, ConfigDict, PositiveFloat

from .logging_setup import get_logger

_logger = get_logger("card_analysis.rates")

HOME_CURRENCY = "ILS"

DEFAULT_RATES_URL = "https://api.exchangerate-api.com/v4/latest/ILS"
DEFAULT_TIMEOUT_SECONDS = 10.0

# Symbol or code as written in the sheet -> ISO code.
CURRENCY_CODES: Mapping[str, str] = MappingProxyType(
    {
        "₪": "ILS",
        "ILS": "ILS",
        "$": "USD",
        "USD": "USD",
        "€": "EUR",
        "EUR": "EUR",
        "£": "GBP",
        "GBP": "GBP",
    }
)

# Codes requested from the live endpoint.
CONVERTED_CODES: tuple[str, ...] = ("USD", "EUR", "GBP")

FALLBACK_RATES: Mapping[str, Decimal] = MappingProxyType(
    {"USD": Decimal("3.70"), "EUR": Decimal("4.05"), "GBP": Decimal("4.70")}
)
FALLBACK_AS_OF = "Fixed Rate"


def resolve_currency(currency: str | None) -> str | None:
    """Map a sheet currency marker to an ISO code.

    Blank markers mean the home currency. Unknown markers return ``None``.
    """

    s = (currency or "").strip()
    if not s:
        return HOME_CURRENCY
    return CURRENCY_CODES.get(s) or CURRENCY_CODES.get(s.upper())


@dataclass(frozen=True, slots=True)
class RateTable:
    """Multipliers from foreign currency codes to :data:`HOME_CURRENCY`."""

    rates: Mapping[str, Decimal]
    source: Literal["live", "fallback"] = "fallback"
    as_of: str = FALLBACK_AS_OF
    home_currency: str = field(default=HOME_CURRENCY)

    def __post_init__(self) -> None:
        frozen = {code.upper(): Decimal(str(rate)) for code, rate in self.rates.items()}
        object.__setattr__(self, "rates", MappingProxyType(frozen))

    def rate_for(self, currency: str | None) -> Decimal | None:
        """Multiplier for a sheet currency marker, ``None`` when unknown."""

        code = resolve_currency(currency)
        if code is None:
            return None
        if code == self.home_currency:
            return Decimal("1")
        return self.rates.get(code)

    def convert(self, amount: Decimal, currency: str | None) -> Decimal:
        """Convert ``amount`` to the home currency; unknown currencies pass through."""

        rate = self.rate_for(currency)
        if rate is None:
            return amount
        return amount * rate

    def describe(self) -> str:
        if self.source == "live":
            return f"Live rates ({self.as_of})"
        return self.as_of


def fallback_rate_table() -> RateTable:
    return RateTable(rates=FALLBACK_RATES, source="fallback", as_of=FALLBACK_AS_OF)


class ExchangeRatesResponse(BaseModel):
    """Subset of the rates endpoint body: units of each currency per 1 ILS."""

    model_config = ConfigDict(extra="ignore")

    base: str | None = None
    rates: dict[str, PositiveFloat]


def _get_rates_url() -> str:
    url = os.getenv("CARD_ANALYSIS_RATES_URL")
    return url.strip() if url and url.strip() else DEFAULT_RATES_URL


def _get_timeout() -> float:
    raw = os.getenv("CARD_ANALYSIS_RATES_TIMEOUT")
    try:
        timeout = float(raw) if raw else DEFAULT_TIMEOUT_SECONDS
    except ValueError:
        timeout = DEFAULT_TIMEOUT_SECONDS
    return timeout if timeout > 0 else DEFAULT_TIMEOUT_SECONDS


def rate_table_from_response(body: Mapping[str, object], *, as_of: str | None = None) -> RateTable:
    """Build a live table from a decoded endpoint body.

    The endpoint quotes foreign units per ILS, so the multiplier to ILS is the
    reciprocal. Raises ``pydantic.ValidationError`` on malformed bodies and
    ``KeyError`` when a required currency is missing.
    """

    parsed = ExchangeRatesResponse.model_validate(body)
    rates = {code: 1 / Decimal(str(parsed.rates[code])) for code in CONVERTED_CODES}
    return RateTable(rates=rates, source="live", as_of=as_of or date.today().isoformat())


def fetch_rate_table(url: str | None = None, *, timeout: float | None = None) -> RateTable:
    """Fetch live ILS rates, falling back to the fixed table on any failure."""

    target = url or _get_rates_url()

    try:
        req = urllib.request.Request(target, method="GET")
        req.add_header("Accept", "application/json")
        with urllib.request.urlopen(req, timeout=timeout or _get_timeout()) as resp:
            body = json.loads(resp.read().decode("utf-8"))
        table = rate_table_from_response(body)
    # ValueError covers bad URLs, JSON/Unicode decoding and ValidationError.
    except (OSError, ValueError, KeyError, ArithmeticError) as e:
        _logger.warning(
            "rates:fetch_failed url=%s error=%s detail=%s; using fallback rates",
            target,
            e.__class__.__name__,
            e,
        )
        return fallback_rate_table()

    _logger.info(
        "rates:fetched url=%s %s",
        target,
        " ".join(f"{code}={rate:.4f}" for code, rate in table.rates.items()),
    )
    return table


__all__ = [
    "CURRENCY_CODES",
    "DEFAULT_RATES_URL",
    "FALLBACK_RATES",
    "HOME_CURRENCY",
    "ExchangeRatesResponse",
    "RateTable",
    "fallback_rate_table",
    "fetch_rate_table",
    "rate_table_from_response",
    "resolve_currency",
]
