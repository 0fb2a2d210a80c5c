"""Merchant ranking and monthly trend aggregation.

Both aggregations are pure folds over a transaction snapshot. Hidden
merchants are removed by the caller (see :func:`exclude_merchants` and
:class:`~card_analysis.session.AnalysisSession`) before aggregating; nothing
here keeps state between calls.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from decimal import Decimal

from .logging_setup import get_logger
from .models import (
    OTHER_MERCHANT,
    MerchantAggregate,
    MerchantBreakdown,
    MonthlyAggregate,
    MonthlySeries,
    NormalizedTransaction,
)
from .normalizers import month_key, parse_date

_logger = get_logger("card_analysis.aggregation")

DEFAULT_TOP_N = 100

# Number of unparseable date samples written to the debug log per series.
_INVALID_DATE_SAMPLES = 3


def exclude_merchants(
    transactions: Iterable[NormalizedTransaction], hidden: Collection[str]
) -> list[NormalizedTransaction]:
    """Drop transactions whose merchant is in ``hidden``."""

    return [tx for tx in transactions if tx.merchant not in hidden]


def by_merchant(
    transactions: Iterable[NormalizedTransaction], *, top_n: int = DEFAULT_TOP_N
) -> MerchantBreakdown:
    """Rank merchants by total home-currency amount.

    The ``top_n`` largest merchants are kept individually (ties keep first-seen
    order); the remainder is folded into a single ``"Other"`` entry.
    ``total`` and ``merchant_count`` always cover all merchants.
    """

    if top_n < 1:
        raise ValueError("top_n must be a positive integer")

    totals: dict[str, Decimal] = {}
    tx_count = 0
    for tx in transactions:
        totals[tx.merchant] = totals.get(tx.merchant, Decimal("0")) + tx.amount_in_home_currency
        tx_count += 1

    ranked = sorted(
        (MerchantAggregate(merchant=m, total=t) for m, t in totals.items()),
        key=lambda agg: agg.total,
        reverse=True,
    )
    kept = ranked[:top_n]
    rest = ranked[top_n:]
    if rest:
        kept.append(
            MerchantAggregate(
                merchant=OTHER_MERCHANT,
                total=sum((agg.total for agg in rest), Decimal("0")),
            )
        )

    return MerchantBreakdown(
        entries=tuple(kept),
        total=sum(totals.values(), Decimal("0")),
        merchant_count=len(ranked),
        transaction_count=tx_count,
        folded_count=len(rest),
    )


def by_month(transactions: Iterable[NormalizedTransaction], merchant: str) -> MonthlySeries:
    """Monthly totals and counts for one merchant, oldest month first.

    Transactions whose date cannot be parsed are counted in
    ``invalid_dates`` and left out of the buckets.
    """

    buckets: dict[str, tuple[Decimal, int]] = {}
    invalid = 0
    samples: list[object] = []

    for tx in transactions:
        if tx.merchant != merchant:
            continue
        parsed = parse_date(tx.date)
        if parsed is None:
            invalid += 1
            if len(samples) < _INVALID_DATE_SAMPLES:
                samples.append(tx.date)
            continue
        key = month_key(parsed)
        amount, count = buckets.get(key, (Decimal("0"), 0))
        buckets[key] = (amount + tx.amount_in_home_currency, count + 1)

    if invalid:
        _logger.debug(
            "by_month:invalid_dates merchant=%r count=%d samples=%r", merchant, invalid, samples
        )

    return MonthlySeries(
        merchant=merchant,
        buckets=tuple(
            MonthlyAggregate(month_key=key, total=amount, count=count)
            for key, (amount, count) in sorted(buckets.items())
        ),
        invalid_dates=invalid,
    )


__all__ = ["DEFAULT_TOP_N", "by_merchant", "by_month", "exclude_merchants"]
