"""Issuer sheet layouts and header-based layout detection.

A :class:`Layout` is a declarative description of one issuer's export: where
the header row sits, which column holds which canonical field, and the
keyword signature that identifies the header row. Detection is a single
generic matcher run over an ordered :class:`LayoutRegistry`; adding a format
means adding a descriptor, not a branch.

Registry order matters: the first candidate whose signature matches wins, so
more specific layouts must come before generic ones that share keywords.
When nothing matches, the registry's default layout applies, so detection
always produces a usable layout.

Custom layouts can be supplied as a JSON list (see :func:`load_layouts`) and
are placed ahead of the built-ins.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field, replace
from os import PathLike
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .logging_setup import get_logger
from .models import RawRow

_logger = get_logger("card_analysis.layouts")

# Number of leading rows searched for a header signature.
DETECTION_WINDOW = 10

REQUIRED_FIELDS: frozenset[str] = frozenset(
    {"date", "merchant", "billing_amount", "billing_currency"}
)
OPTIONAL_FIELDS: frozenset[str] = frozenset(
    {
        "transaction_amount",
        "transaction_currency",
        "category",
        "notes",
        "receipt_number",
        "card_number",
        "billing_date",
        "additional_details",
    }
)


@dataclass(frozen=True, slots=True)
class Layout:
    """Column map and header signature for one issuer format.

    ``columns`` maps canonical field names to zero-based column indexes.
    ``required_keywords`` must all appear in the lower-cased, ``|``-joined
    header row; ``excluded_keywords`` must not (used to tell apart layouts
    that share a keyword).
    """

    id: str
    display_name: str
    header_row_index: int
    data_start_row_index: int
    columns: Mapping[str, int]
    required_keywords: tuple[str, ...] = ()
    excluded_keywords: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise ValueError("Layout.id must be non-empty")
        if self.header_row_index < 0:
            raise ValueError(f"Layout {self.id}: header_row_index must be >= 0")
        if self.data_start_row_index <= self.header_row_index:
            raise ValueError(
                f"Layout {self.id}: data_start_row_index must be greater than header_row_index"
            )

        missing = sorted(REQUIRED_FIELDS - set(self.columns))
        if missing:
            raise ValueError(f"Layout {self.id}: missing required columns: {', '.join(missing)}")
        unknown = sorted(set(self.columns) - REQUIRED_FIELDS - OPTIONAL_FIELDS)
        if unknown:
            raise ValueError(f"Layout {self.id}: unknown columns: {', '.join(unknown)}")
        for name, idx in self.columns.items():
            if isinstance(idx, bool) or not isinstance(idx, int) or idx < 0:
                raise ValueError(f"Layout {self.id}: column {name!r} must be an index >= 0")
        required_idx = [self.columns[name] for name in REQUIRED_FIELDS]
        if len(set(required_idx)) != len(required_idx):
            raise ValueError(f"Layout {self.id}: required columns must use distinct indexes")

        # Freeze the mapping and normalize keywords for matching.
        object.__setattr__(self, "columns", MappingProxyType(dict(self.columns)))
        object.__setattr__(
            self, "required_keywords", tuple(k.lower() for k in self.required_keywords)
        )
        object.__setattr__(
            self, "excluded_keywords", tuple(k.lower() for k in self.excluded_keywords)
        )

    def column(self, name: str) -> int | None:
        """Column index for ``name``, or ``None`` when the layout lacks it."""

        return self.columns.get(name)

    def matches(self, header_text: str) -> bool:
        """Test a lower-cased, ``|``-joined row against this signature."""

        if not self.required_keywords:
            return False
        return all(k in header_text for k in self.required_keywords) and not any(
            k in header_text for k in self.excluded_keywords
        )

    def anchored_at(self, row_index: int) -> Layout:
        """Copy of this layout with the header at ``row_index``."""

        return replace(self, header_row_index=row_index, data_start_row_index=row_index + 1)


# ---------------------------------------------------------------------------
# Built-in layouts
# ---------------------------------------------------------------------------

_FORMAT_A_COLUMNS = {
    "date": 0,
    "merchant": 1,
    "transaction_amount": 2,
    "transaction_currency": 3,
    "billing_amount": 4,
    "billing_currency": 5,
    "receipt_number": 6,
    "additional_details": 7,
}

FORMAT_B = Layout(
    id="FORMAT_B",
    display_name="Discount/Max/Other Issuer",
    header_row_index=0,
    data_start_row_index=1,
    columns={
        "date": 0,
        "merchant": 1,
        "category": 2,
        "billing_amount": 5,
        "billing_currency": 6,
        "transaction_amount": 7,
        "transaction_currency": 8,
        "billing_date": 9,
        "notes": 10,
    },
    required_keywords=("קטגוריה", "תאריך עסקה"),
)

FORMAT_A = Layout(
    id="FORMAT_A",
    display_name="Original Format",
    header_row_index=0,
    data_start_row_index=1,
    columns=_FORMAT_A_COLUMNS,
    required_keywords=("שם בית עסק",),
    excluded_keywords=("קטגוריה",),
)

# Used when no header row matches; the original export puts its header on row 9.
DEFAULT_LAYOUT = Layout(
    id="FORMAT_A",
    display_name="Original Format (Default)",
    header_row_index=8,
    data_start_row_index=9,
    columns=_FORMAT_A_COLUMNS,
)


# ---------------------------------------------------------------------------
# Registry and detection
# ---------------------------------------------------------------------------


def _row_text(row: RawRow) -> str:
    return "|".join("" if cell is None else str(cell) for cell in row).lower()


@dataclass(frozen=True, slots=True)
class LayoutRegistry:
    """Ordered detection candidates plus the fallback layout."""

    layouts: tuple[Layout, ...]
    default: Layout = field(default=DEFAULT_LAYOUT)

    def __iter__(self) -> Iterator[Layout]:
        yield from self.layouts
        yield self.default

    def detect(self, rows: Sequence[RawRow]) -> Layout:
        """Return the first layout whose signature matches a leading row.

        Scans at most :data:`DETECTION_WINDOW` rows; rows are tried in order
        and, for each row, candidates in registry order. Falls back to
        :attr:`default` at its fixed indexes.
        """

        for i, row in enumerate(rows[:DETECTION_WINDOW]):
            if not row:
                continue
            text = _row_text(row)
            for layout in self.layouts:
                if layout.matches(text):
                    _logger.debug(
                        "detect_layout:matched layout=%s header_row=%d", layout.id, i
                    )
                    return layout.anchored_at(i)

        _logger.debug(
            "detect_layout:default layout=%s header_row=%d",
            self.default.id,
            self.default.header_row_index,
        )
        return self.default

    def register(self, layout: Layout) -> LayoutRegistry:
        """New registry with ``layout`` as the last candidate before the default."""

        return replace(self, layouts=(*self.layouts, layout))

    def prepend(self, layouts: Iterable[Layout]) -> LayoutRegistry:
        """New registry with ``layouts`` tried before the existing candidates."""

        return replace(self, layouts=(*layouts, *self.layouts))

    def get(self, layout_id: str) -> Layout | None:
        for layout in self.layouts:
            if layout.id == layout_id:
                return layout
        return self.default if self.default.id == layout_id else None


# Most specific first. A FORMAT_B header may also carry the merchant label that
# identifies FORMAT_A, so FORMAT_A excludes FORMAT_B's category column.
DEFAULT_REGISTRY = LayoutRegistry(layouts=(FORMAT_B, FORMAT_A))


def detect_layout(rows: Sequence[RawRow], registry: LayoutRegistry | None = None) -> Layout:
    """Pick the layout for ``rows`` (see :meth:`LayoutRegistry.detect`)."""

    return (registry or DEFAULT_REGISTRY).detect(rows)


# ---------------------------------------------------------------------------
# Custom layout files
# ---------------------------------------------------------------------------


class LayoutConfig(BaseModel):
    """On-disk shape of one custom layout (JSON object)."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    id: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    header_row_index: int = Field(default=0, ge=0)
    data_start_row_index: int | None = None
    columns: dict[str, int]
    required_keywords: list[str] = Field(min_length=1)
    excluded_keywords: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _default_data_start(self) -> LayoutConfig:
        if self.data_start_row_index is None:
            self.data_start_row_index = self.header_row_index + 1
        return self

    def to_layout(self) -> Layout:
        return Layout(
            id=self.id,
            display_name=self.display_name,
            header_row_index=self.header_row_index,
            data_start_row_index=self.data_start_row_index,
            columns=self.columns,
            required_keywords=tuple(self.required_keywords),
            excluded_keywords=tuple(self.excluded_keywords),
        )


def parse_layouts(data: Any) -> list[Layout]:
    """Validate decoded JSON (a list of layout objects) into layouts.

    Raises ``pydantic.ValidationError`` for schema problems and ``ValueError``
    for layouts that violate column invariants.
    """

    if not isinstance(data, list):
        raise ValueError("layout file must contain a JSON list of layout objects")
    return [LayoutConfig.model_validate(item).to_layout() for item in data]


def load_layouts(path: str | PathLike[str]) -> list[Layout]:
    """Read custom layouts from a UTF-8 JSON file."""

    p = Path(path)
    with p.open(encoding="utf-8") as f:
        data = json.load(f)
    layouts = parse_layouts(data)
    _logger.info("load_layouts:loaded path=%s count=%d", p, len(layouts))
    return layouts


def registry_with(layouts: Iterable[Layout]) -> LayoutRegistry:
    """Built-in registry with ``layouts`` tried first."""

    return DEFAULT_REGISTRY.prepend(layouts)


__all__ = [
    "DEFAULT_LAYOUT",
    "DEFAULT_REGISTRY",
    "DETECTION_WINDOW",
    "FORMAT_A",
    "FORMAT_B",
    "OPTIONAL_FIELDS",
    "REQUIRED_FIELDS",
    "Layout",
    "LayoutConfig",
    "LayoutRegistry",
    "detect_layout",
    "load_layouts",
    "parse_layouts",
    "registry_with",
]
