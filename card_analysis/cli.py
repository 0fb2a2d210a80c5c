"""CLI for the ``card_analysis`` package.

Typer-based console interface over the extraction and aggregation API.
Environment variables (``CARD_ANALYSIS_*``) are loaded from a local ``.env``
with ``python-dotenv`` before commands run; existing environment values win.

Commands
--------
- ``analyze FILES...``: per-file detection summary and merchant ranking.
- ``trend FILES... --merchant NAME``: monthly totals for one merchant.
- ``layouts``: the layout registry in detection order.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from typer.models import ArgumentInfo, OptionInfo

from .aggregation import DEFAULT_TOP_N
from .ingest.batch import process_files
from .layouts import DEFAULT_REGISTRY, LayoutRegistry, load_layouts, registry_with
from .logging_setup import configure_logging
from .models import MerchantBreakdown, MonthlySeries
from .normalizers import format_amount, format_count
from .rates import RateTable, fallback_rate_table, fetch_rate_table
from .session import AnalysisSession

console = Console()
err_console = Console(stderr=True)

_TRUTHY = {"1", "true", "yes", "on"}


# ---- Small module-level helpers used by CLI commands -------------------------


def _env_offline() -> bool:
    return (os.getenv("CARD_ANALYSIS_OFFLINE") or "").strip().lower() in _TRUTHY


def _resolve_top_n(top: int | None) -> int:
    """Explicit ``--top`` wins, then ``CARD_ANALYSIS_TOP_N``, then the default."""

    if top is not None:
        return top
    raw = os.getenv("CARD_ANALYSIS_TOP_N")
    try:
        value = int(raw) if raw else DEFAULT_TOP_N
    except ValueError:
        value = DEFAULT_TOP_N
    return value if value > 0 else DEFAULT_TOP_N


def _resolve_rates(offline: bool) -> RateTable:
    if offline or _env_offline():
        return fallback_rate_table()
    return fetch_rate_table()


def _resolve_registry(layouts_path: Path | None) -> LayoutRegistry:
    if layouts_path is None:
        return DEFAULT_REGISTRY
    try:
        return registry_with(load_layouts(layouts_path))
    except OSError as e:
        err_console.print(f"[red]Error:[/red] cannot read layout file {layouts_path}: {e}")
        raise typer.Exit(1) from e
    except ValueError as e:
        # pydantic.ValidationError is a ValueError
        err_console.print(f"[red]Error:[/red] invalid layout file {layouts_path}: {e}")
        raise typer.Exit(1) from e


def _load_session(
    files: Sequence[Path], *, offline: bool, layouts_path: Path | None
) -> tuple[AnalysisSession, RateTable]:
    rates = _resolve_rates(offline)
    registry = _resolve_registry(layouts_path)
    results = process_files(files, rates, registry=registry)
    return AnalysisSession.from_results(results), rates


def _print_files(session: AnalysisSession) -> None:
    table = Table(title="Files")
    table.add_column("File")
    table.add_column("Format")
    table.add_column("Transactions", justify="right")
    for r in session.results:
        if r.ok:
            table.add_row(escape(r.file_name), escape(r.layout_name or ""), format_count(r.count))
        else:
            table.add_row(escape(r.file_name), "[red]error[/red]", "-")
    console.print(table)

    if session.errors:
        names = ", ".join(escape(name) for name, _ in session.errors)
        err_console.print(f"[red]Error processing files:[/red] {names}")
        for _, message in session.errors:
            err_console.print(f"  {escape(message)}")


def _print_breakdown(breakdown: MerchantBreakdown, rates: RateTable) -> None:
    table = Table(title="Spending by merchant (ILS)")
    table.add_column("#", justify="right")
    table.add_column("Merchant")
    table.add_column("Amount", justify="right")
    table.add_column("Share", justify="right")
    for rank, entry in enumerate(breakdown.entries, start=1):
        table.add_row(
            "" if breakdown.has_other and rank == len(breakdown.entries) else str(rank),
            escape(entry.merchant),
            format_amount(entry.total),
            f"{breakdown.share(entry):.1f}%",
        )
    console.print(table)

    shown = breakdown.merchant_count - breakdown.folded_count
    other_text = " + Other" if breakdown.has_other else ""
    console.print(f"Total expenses: ₪{format_amount(breakdown.total)}")
    console.print(f"Transactions: {format_count(breakdown.transaction_count)}")
    console.print(f"Merchants: {format_count(breakdown.merchant_count)}")
    console.print(f"Displayed: {shown} top merchants{other_text}")
    console.print(f"Exchange rates: {rates.describe()}")


def _print_series(series: MonthlySeries) -> None:
    table = Table(title=f"Monthly trend: {escape(series.merchant)}")
    table.add_column("Month")
    table.add_column("Amount (ILS)", justify="right")
    table.add_column("Transactions", justify="right")
    for bucket in series.buckets:
        table.add_row(bucket.label, format_amount(bucket.total), format_count(bucket.count))
    console.print(table)
    console.print(
        f"Total: ₪{format_amount(series.total)} over {len(series.buckets)} month(s)"
    )
    if series.invalid_dates:
        console.print(
            f"[yellow]Note:[/yellow] {series.invalid_dates} transactions with invalid dates "
            "were excluded from the chart."
        )


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Analyze credit-card transaction exports (XLSX/CSV) from several issuer "
        "formats: merchant ranking and monthly trends in ILS."
    ),
)


# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
FILES_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Transaction export files (.xlsx, .xlsm or .csv).",
    dir_okay=False,
    exists=False,  # missing files are reported per file, not by Typer
)
OFFLINE_OPTION: OptionInfo = typer.Option(
    False, "--offline", help="Skip the live rate fetch and use the fixed fallback rates."
)
LAYOUTS_OPTION: OptionInfo = typer.Option(
    None,
    "--layouts",
    help="JSON file with additional layouts, tried before the built-in ones.",
    dir_okay=False,
)


@app.command("analyze")
def analyze_cmd(
    files: Annotated[list[Path], FILES_ARGUMENT],
    *,
    top: int | None = typer.Option(
        None, "--top", min=1, help="Merchants listed individually (default 100)."
    ),
    exclude: list[str] = typer.Option(
        [], "--exclude", help="Hide a merchant from the ranking (repeatable)."
    ),
    offline: bool = OFFLINE_OPTION,
    layouts: Path | None = LAYOUTS_OPTION,
) -> None:
    """Detect each file's format and rank merchants by total spend."""

    session, rates = _load_session(files, offline=offline, layouts_path=layouts)
    _print_files(session)

    if not session.transactions:
        err_console.print("[red]No transactions found in files[/red]")
        raise typer.Exit(1)

    for merchant in exclude:
        if session.can_exclude(merchant):
            session = session.exclude(merchant)
        else:
            err_console.print(f"[yellow]Cannot exclude merchant:[/yellow] {escape(merchant)}")

    _print_breakdown(session.breakdown(top_n=_resolve_top_n(top)), rates)


@app.command("trend")
def trend_cmd(
    files: Annotated[list[Path], FILES_ARGUMENT],
    *,
    merchant: str = typer.Option(..., "--merchant", "-m", help="Exact merchant name."),
    offline: bool = OFFLINE_OPTION,
    layouts: Path | None = LAYOUTS_OPTION,
) -> None:
    """Show monthly totals for one merchant."""

    session, _rates = _load_session(files, offline=offline, layouts_path=layouts)

    if not session.transactions:
        _print_files(session)
        err_console.print("[red]No transactions found in files[/red]")
        raise typer.Exit(1)

    try:
        series = session.monthly_trend(merchant)
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if not series.buckets:
        err_console.print(f"[yellow]No valid monthly data for {merchant}.[/yellow]")
        if series.invalid_dates:
            err_console.print(f"{series.invalid_dates} transactions had unreadable dates.")
        raise typer.Exit(1)

    _print_series(series)


@app.command("layouts")
def layouts_cmd(layouts: Path | None = LAYOUTS_OPTION) -> None:
    """List known layouts in detection order (the last one is the fallback)."""

    registry = _resolve_registry(layouts)
    table = Table(title="Layouts")
    table.add_column("Order", justify="right")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Header keywords")
    for order, layout in enumerate(registry, start=1):
        keywords = ", ".join(layout.required_keywords) or "(fallback)"
        if layout.excluded_keywords:
            keywords += " / not: " + ", ".join(layout.excluded_keywords)
        table.add_row(str(order), layout.id, layout.display_name, keywords)
    console.print(table)


@app.callback()
def _root(
    log_level: str | None = typer.Option(
        None, "--log-level", help="Logging level (overrides CARD_ANALYSIS_LOG_LEVEL)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
