"""Analysis session: the loaded file results plus the hidden-merchant set.

The session is an immutable value owned by the caller (the CLI, or a UI
controller). Hiding or restoring merchants returns a new session, and every
aggregate is recomputed from the session's visible transactions.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from .aggregation import DEFAULT_TOP_N, by_merchant, by_month, exclude_merchants
from .ingest.batch import all_transactions
from .models import (
    OTHER_MERCHANT,
    FileResult,
    MerchantBreakdown,
    MonthlySeries,
    NormalizedTransaction,
)


@dataclass(frozen=True, slots=True)
class AnalysisSession:
    results: tuple[FileResult, ...] = ()
    hidden: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_results(cls, results: Iterable[FileResult]) -> AnalysisSession:
        return cls(results=tuple(results))

    @property
    def transactions(self) -> list[NormalizedTransaction]:
        """All extracted transactions, in file order."""

        return all_transactions(self.results)

    @property
    def errors(self) -> list[tuple[str, str]]:
        return [(r.file_name, r.error) for r in self.results if r.error is not None]

    def visible_transactions(self) -> list[NormalizedTransaction]:
        return exclude_merchants(self.transactions, self.hidden)

    def breakdown(self, *, top_n: int = DEFAULT_TOP_N) -> MerchantBreakdown:
        return by_merchant(self.visible_transactions(), top_n=top_n)

    def monthly_trend(self, merchant: str) -> MonthlySeries:
        """Monthly series for one visible merchant.

        The ``"Other"`` bucket spans many merchants and has no single trend.
        """

        if merchant == OTHER_MERCHANT:
            raise ValueError(
                'The "Other" category contains multiple merchants and cannot display monthly trends.'
            )
        return by_month(self.visible_transactions(), merchant)

    def can_exclude(self, merchant: str) -> bool:
        """Whether ``merchant`` may be hidden (never "Other", never the last one)."""

        if merchant == OTHER_MERCHANT or merchant in self.hidden:
            return False
        visible = {tx.merchant for tx in self.visible_transactions()}
        return merchant in visible and len(visible) > 1

    def exclude(self, merchant: str) -> AnalysisSession:
        if not self.can_exclude(merchant):
            raise ValueError(f"cannot exclude merchant: {merchant!r}")
        return replace(self, hidden=self.hidden | {merchant})

    def restore_all(self) -> AnalysisSession:
        return replace(self, hidden=frozenset())


__all__ = ["AnalysisSession"]
