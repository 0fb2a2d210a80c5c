from __future__ import annotations

import logging
from decimal import Decimal

import pytest

from card_analysis.aggregation import by_merchant, by_month, exclude_merchants
from card_analysis.models import OTHER_MERCHANT, NormalizedTransaction


def _mk_tx(merchant: str, amount, date="15/03/2024") -> NormalizedTransaction:
    value = Decimal(str(amount))
    return NormalizedTransaction(
        date=date,
        merchant=merchant,
        billing_amount=value,
        billing_currency="₪",
        amount_in_home_currency=value,
        source_format="FORMAT_A",
    )


# ---- by_merchant -------------------------------------------------------------


def test_refunds_net_against_charges():
    txs = [_mk_tx("Shop", 100), _mk_tx("Shop", -30), _mk_tx("Shop", 50)]

    breakdown = by_merchant(txs)

    assert breakdown.entries[0].merchant == "Shop"
    assert breakdown.entries[0].total == Decimal("120")
    assert breakdown.total == Decimal("120")
    assert breakdown.transaction_count == 3


def test_ranking_is_descending():
    txs = [_mk_tx("A", 10), _mk_tx("B", 300), _mk_tx("C", 45.5), _mk_tx("A", 5)]

    breakdown = by_merchant(txs)

    assert [(e.merchant, e.total) for e in breakdown.entries] == [
        ("B", Decimal("300")),
        ("C", Decimal("45.5")),
        ("A", Decimal("15")),
    ]
    assert not breakdown.has_other


def test_ties_keep_first_seen_order():
    txs = [_mk_tx("Zed", 10), _mk_tx("Alpha", 10), _mk_tx("Mid", 10)]

    assert [e.merchant for e in by_merchant(txs).entries] == ["Zed", "Alpha", "Mid"]


def test_tail_is_folded_into_other():
    txs = [_mk_tx(f"M{i:03d}", 1000 - i) for i in range(105)]

    breakdown = by_merchant(txs)

    assert len(breakdown.entries) == 101
    assert breakdown.entries[-1].merchant == OTHER_MERCHANT
    assert breakdown.entries[-1].total == sum(Decimal(1000 - i) for i in range(100, 105))
    assert breakdown.merchant_count == 105
    assert breakdown.folded_count == 5
    assert breakdown.has_other
    assert breakdown.total == sum(e.total for e in breakdown.entries)


def test_exactly_top_n_merchants_has_no_other():
    txs = [_mk_tx(f"M{i}", i + 1) for i in range(100)]

    breakdown = by_merchant(txs)

    assert len(breakdown.entries) == 100
    assert OTHER_MERCHANT not in {e.merchant for e in breakdown.entries}


def test_custom_top_n():
    txs = [_mk_tx("A", 3), _mk_tx("B", 2), _mk_tx("C", 1)]

    breakdown = by_merchant(txs, top_n=1)

    assert [(e.merchant, e.total) for e in breakdown.entries] == [
        ("A", Decimal("3")),
        (OTHER_MERCHANT, Decimal("3")),
    ]


@pytest.mark.parametrize("top_n", [0, -5])
def test_top_n_must_be_positive(top_n):
    with pytest.raises(ValueError):
        by_merchant([_mk_tx("A", 1)], top_n=top_n)


def test_empty_input():
    breakdown = by_merchant([])

    assert breakdown.entries == ()
    assert breakdown.total == Decimal("0")
    assert breakdown.merchant_count == 0


def test_share_percentages():
    breakdown = by_merchant([_mk_tx("A", 75), _mk_tx("B", 25)])

    assert breakdown.share(breakdown.entries[0]) == Decimal("75")
    assert by_merchant([_mk_tx("A", 0)]).share(breakdown.entries[0]) == Decimal("0")


def test_exclude_merchants_removes_all_their_rows():
    txs = [_mk_tx("A", 1), _mk_tx("B", 2), _mk_tx("A", 3)]

    kept = exclude_merchants(txs, {"A"})

    assert [tx.merchant for tx in kept] == ["B"]
    assert by_merchant(kept).total == Decimal("2")


# ---- by_month ----------------------------------------------------------------


def test_same_month_is_summed():
    txs = [_mk_tx("Cafe", 50, "05/03/2024"), _mk_tx("Cafe", 70, "28/03/2024")]

    series = by_month(txs, "Cafe")

    assert len(series.buckets) == 1
    bucket = series.buckets[0]
    assert bucket.month_key == "2024-03"
    assert bucket.total == Decimal("120")
    assert bucket.count == 2
    assert bucket.label == "March 2024"


def test_months_are_chronological_across_formats():
    txs = [
        _mk_tx("Cafe", 1, "10/01/2025"),
        _mk_tx("Cafe", 2, 45000),  # 2023-03-15
        _mk_tx("Cafe", 3, "2024-07-04"),
        _mk_tx("Cafe", 4, "01.12.24"),
    ]

    series = by_month(txs, "Cafe")

    assert [b.month_key for b in series.buckets] == ["2023-03", "2024-07", "2024-12", "2025-01"]
    assert series.total == Decimal("10")


def test_only_the_requested_merchant_is_counted():
    txs = [_mk_tx("Cafe", 10), _mk_tx("Shop", 99), _mk_tx("Cafe", 5)]

    series = by_month(txs, "Cafe")

    assert series.buckets[0].total == Decimal("15")
    assert series.buckets[0].count == 2


def test_invalid_dates_are_counted_not_bucketed(caplog):
    txs = [
        _mk_tx("Cafe", 10, "15/03/2024"),
        _mk_tx("Cafe", 20, "not a date"),
        _mk_tx("Cafe", 30, ""),
        _mk_tx("Cafe", 40, "31/02/2024"),
    ]

    with caplog.at_level(logging.DEBUG, logger="card_analysis"):
        series = by_month(txs, "Cafe")

    assert series.invalid_dates == 3
    assert [b.total for b in series.buckets] == [Decimal("10")]
    assert any("by_month:invalid_dates" in r.getMessage() for r in caplog.records)


def test_partial_dates_bucket_independent_of_run_date():
    txs = [
        _mk_tx("Cafe", 10, "2024"),
        _mk_tx("Cafe", 20, "March 2024"),
        _mk_tx("Cafe", 30, "12"),
    ]

    series = by_month(txs, "Cafe")

    assert [(b.month_key, b.total) for b in series.buckets] == [
        ("2024-01", Decimal("10")),
        ("2024-03", Decimal("20")),
    ]
    assert series.invalid_dates == 1


def test_unknown_merchant_yields_empty_series():
    series = by_month([_mk_tx("Cafe", 10)], "Nobody")

    assert series.buckets == ()
    assert series.invalid_dates == 0
    assert series.total == Decimal("0")
