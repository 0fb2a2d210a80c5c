from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from card_analysis.extraction import extract, extract_transactions
from card_analysis.layouts import Layout, registry_with
from card_analysis.models import NormalizedTransaction
from card_analysis.rates import RateTable, fallback_rate_table

FORMAT_A_HEADER = [
    "תאריך רכישה",
    "שם בית עסק",
    "סכום עסקה",
    "מטבע עסקה",
    "סכום חיוב",
    "מטבע חיוב",
    "מס' שובר",
    "פירוט נוסף",
]

FORMAT_B_HEADER = [
    "תאריך עסקה",
    "שם בית העסק",
    "קטגוריה",
    "4 ספרות אחרונות של כרטיס האשראי",
    "סוג עסקה",
    "סכום חיוב",
    "מטבע חיוב",
    "סכום עסקה מקורי",
    "מטבע עסקה מקורי",
    "תאריך חיוב",
    "הערות",
]


def _rates() -> RateTable:
    return fallback_rate_table()


def _format_a_sheet():
    return [
        ["כרטיס ויזה 1234"],
        [],
        FORMAT_A_HEADER,
        ["15/03/2024", "Super Pharm", "87.40", "₪", "87.40", "₪", "1001", ""],
        ["16/03/2024", "Amazon", "10.00", "$", "10", "$", "1002", "Online"],
        [],
        ["", "Card 1234", "", "", "97.40", "₪", "", ""],
        FORMAT_A_HEADER,
        ["02/04/2024", "Netflix", "49.90", "₪", "49.90", "₪", "1003", "הוראת קבע"],
        ["03/04/2024", "Super Pharm", "-30", "₪", "-30", "₪", "1004", ""],
        ["04/04/2024", "Broken Row", "", "", "n/a", "₪", "1005", ""],
        ['סה"כ לחיוב', "כרטיס 1234", "", "", "107.30", "₪", "", ""],
    ]


def _format_b_sheet():
    return [
        FORMAT_B_HEADER,
        [
            datetime(2024, 3, 15),
            "שופרסל",
            "מזון",
            "5678",
            "רגילה",
            "1,234.56",
            "₪",
            "1,234.56",
            "₪",
            "10/04/2024",
            "",
        ],
        [
            "20/03/2024",
            "Spotify",
            "פנאי",
            "5678",
            "הוראת קבע",
            "5.00",
            "€",
            "5.00",
            "€",
            "10/04/2024",
            "הוראת קבע",
        ],
        [None] * 11,
        ["", 'סה"כ לחיוב', "", "", "", "1,254.81", "₪", "", "", "", ""],
    ]


# ---- FORMAT_A ----------------------------------------------------------------


def test_format_a_snapshot():
    result = extract(_format_a_sheet(), _rates())

    assert result.layout.id == "FORMAT_A"
    assert result.layout.header_row_index == 2
    assert list(result.transactions) == [
        NormalizedTransaction(
            date="15/03/2024",
            merchant="Super Pharm",
            billing_amount=Decimal("87.40"),
            billing_currency="₪",
            amount_in_home_currency=Decimal("87.40"),
            source_format="FORMAT_A",
            transaction_amount=Decimal("87.40"),
            transaction_currency="₪",
            receipt_number="1001",
        ),
        NormalizedTransaction(
            date="16/03/2024",
            merchant="Amazon",
            billing_amount=Decimal("10"),
            billing_currency="$",
            amount_in_home_currency=Decimal("37.00"),
            source_format="FORMAT_A",
            transaction_amount=Decimal("10.00"),
            transaction_currency="$",
            notes="Online",
            receipt_number="1002",
        ),
        NormalizedTransaction(
            date="02/04/2024",
            merchant="Netflix",
            billing_amount=Decimal("49.90"),
            billing_currency="₪",
            amount_in_home_currency=Decimal("49.90"),
            source_format="FORMAT_A",
            transaction_amount=Decimal("49.90"),
            transaction_currency="₪",
            notes="הוראת קבע",
            receipt_number="1003",
        ),
        NormalizedTransaction(
            date="03/04/2024",
            merchant="Super Pharm",
            billing_amount=Decimal("-30"),
            billing_currency="₪",
            amount_in_home_currency=Decimal("-30"),
            source_format="FORMAT_A",
            transaction_amount=Decimal("-30"),
            transaction_currency="₪",
            receipt_number="1004",
        ),
    ]


def test_format_a_stats_count_every_skipped_row():
    stats = extract(_format_a_sheet(), _rates()).stats

    assert stats.rows_scanned == 9
    assert stats.empty == 1
    assert stats.headers == 1
    assert stats.summaries == 2
    assert stats.malformed == 1
    assert stats.extracted == 4
    assert stats.skipped + stats.extracted == stats.rows_scanned


def test_recurring_and_refund_flags():
    txs = extract_transactions(_format_a_sheet(), _rates())

    assert [tx.merchant for tx in txs if tx.is_recurring] == ["Netflix"]
    assert [tx.billing_amount for tx in txs if tx.is_refund] == [Decimal("-30")]


# ---- FORMAT_B ----------------------------------------------------------------


def test_format_b_snapshot():
    txs = extract_transactions(_format_b_sheet(), _rates())

    assert txs == [
        NormalizedTransaction(
            date=datetime(2024, 3, 15),
            merchant="שופרסל",
            billing_amount=Decimal("1234.56"),
            billing_currency="₪",
            amount_in_home_currency=Decimal("1234.56"),
            source_format="FORMAT_B",
            transaction_amount=Decimal("1234.56"),
            transaction_currency="₪",
            category="מזון",
            billing_date="10/04/2024",
        ),
        NormalizedTransaction(
            date="20/03/2024",
            merchant="Spotify",
            billing_amount=Decimal("5.00"),
            billing_currency="€",
            amount_in_home_currency=Decimal("20.25"),
            source_format="FORMAT_B",
            transaction_amount=Decimal("5.00"),
            transaction_currency="€",
            category="פנאי",
            notes="הוראת קבע",
            billing_date="10/04/2024",
        ),
    ]
    assert txs[1].is_recurring


# ---- Conversion and invariants -----------------------------------------------


def test_usd_conversion_uses_table_rate():
    (tx,) = extract_transactions(
        [FORMAT_A_HEADER, ["01/05/2024", "Amazon", "10", "USD", "10", "USD", "", ""]],
        _rates(),
    )

    assert tx.amount_in_home_currency == Decimal("37.0")


def test_unknown_currency_passes_amount_through():
    (tx,) = extract_transactions(
        [FORMAT_A_HEADER, ["01/05/2024", "Shop", "100", "JPY", "100", "JPY", "", ""]],
        _rates(),
    )

    assert tx.amount_in_home_currency == Decimal("100")


def test_live_rate_table_changes_conversion_only():
    live = RateTable(rates={"USD": Decimal("3.5")}, source="live", as_of="2024-05-01")
    rows = [FORMAT_A_HEADER, ["01/05/2024", "Amazon", "10", "$", "10", "$", "", ""]]

    (tx,) = extract_transactions(rows, live)

    assert tx.billing_amount == Decimal("10")
    assert tx.amount_in_home_currency == Decimal("35.0")


def test_extraction_is_idempotent():
    sheet = _format_a_sheet()

    assert extract_transactions(sheet, _rates()) == extract_transactions(sheet, _rates())


def test_no_noise_rows_survive_extraction():
    txs = extract_transactions(_format_a_sheet() + _format_b_sheet(), _rates())

    for tx in txs:
        assert tx.merchant
        assert tx.merchant not in {"שם בית עסק", "שם בית העסק"}
        assert "סה" not in tx.merchant


def test_default_layout_when_header_is_missing():
    padding = [["statement line"] for _ in range(9)]
    rows = [*padding, ["15/03/2024", "Cafe", "12", "₪", "12", "₪", "77", "note"]]

    result = extract(rows, _rates())

    assert result.layout.display_name == "Original Format (Default)"
    assert [tx.merchant for tx in result.transactions] == ["Cafe"]
    assert result.transactions[0].notes == "note"


def test_sheet_shorter_than_default_data_start_yields_nothing():
    result = extract([["hello"], ["world"]], _rates())

    assert result.transactions == ()
    assert result.stats.rows_scanned == 0


def test_custom_layout_registry():
    custom = Layout(
        id="BANK_X",
        display_name="Bank X",
        header_row_index=0,
        data_start_row_index=1,
        columns={"date": 0, "merchant": 1, "billing_amount": 2, "billing_currency": 3},
        required_keywords=("merchant",),
    )
    rows = [["Date", "Merchant", "Amount", "Currency"], ["2024-05-01", "Cafe", "9.5", "ILS"]]

    result = extract(rows, _rates(), registry=registry_with([custom]))

    assert result.layout.id == "BANK_X"
    assert result.transactions[0].source_format == "BANK_X"
    assert result.transactions[0].amount_in_home_currency == Decimal("9.5")


def test_additional_details_take_precedence_over_notes():
    custom = Layout(
        id="BANK_X",
        display_name="Bank X",
        header_row_index=0,
        data_start_row_index=1,
        columns={
            "date": 0,
            "merchant": 1,
            "billing_amount": 2,
            "billing_currency": 3,
            "notes": 4,
            "additional_details": 5,
        },
        required_keywords=("merchant",),
    )
    rows = [
        ["Date", "Merchant", "Amount", "Currency", "Notes", "Details"],
        ["2024-05-01", "Gym", "120", "ILS", "paid in branch", "הוראת קבע"],
        ["2024-05-02", "Cafe", "9.5", "ILS", "הוראת קבע", ""],
    ]

    txs = extract(rows, _rates(), registry=registry_with([custom])).transactions

    assert txs[0].notes == "הוראת קבע"
    assert txs[0].is_recurring
    # Empty details fall back to the notes column.
    assert txs[1].notes == "הוראת קבע"


def test_extract_logs_detected_layout(caplog):
    with caplog.at_level(logging.INFO, logger="card_analysis"):
        extract(_format_a_sheet(), _rates())

    messages = [r.getMessage() for r in caplog.records]
    assert any(m.startswith("extract:layout_detected layout=FORMAT_A") for m in messages)
    assert any("malformed=1" in m for m in messages)
