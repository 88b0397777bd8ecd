"""Export utilities for household rows shown in the roadmap table."""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, MutableMapping, Optional, Sequence, Tuple, Union

import pandas as pd

from ..formatting import format_cents
from ..models import Household, HouseholdStatus, LeadSource, TeamMember

PathLike = Union[str, Path]

EXPORT_COLUMNS = ("Name", "ZIP", "Products", "Premium", "Lead Source", "Objection", "Producer", "Status")
SORT_COLUMNS = ("name", "zip", "products", "premium", "lead_source", "objection", "producer", "status")

SortCriterion = Tuple[str, str]


@dataclass(slots=True)
class HouseholdRow:
    """A household with the display names the table resolves for it."""

    household: Household
    lead_source: str = ""
    objection: str = ""
    producer: str = ""

    @property
    def _uses_sales(self) -> bool:
        return self.household.status is HouseholdStatus.SOLD and bool(self.household.sales)

    @property
    def products(self) -> List[str]:
        """Distinct product types: sales for sold households, quotes otherwise."""

        items = self.household.sales if self._uses_sales else self.household.quotes
        return list(dict.fromkeys(item.product_type for item in items if item.product_type))

    @property
    def premium_cents(self) -> int:
        items = self.household.sales if self._uses_sales else self.household.quotes
        return sum(item.premium_cents or 0 for item in items)

    @property
    def name(self) -> str:
        return self.household.display_name()

    @property
    def status_label(self) -> str:
        value = self.household.status.value
        return value[:1].upper() + value[1:]

    def export_values(self) -> List[str]:
        return [
            self.name,
            self.household.zip_code or "",
            ", ".join(self.products),
            format_cents(self.premium_cents),
            self.lead_source,
            self.objection,
            self.producer,
            self.status_label,
        ]


def build_household_rows(
    households: Iterable[Household],
    *,
    lead_sources: Iterable[LeadSource] = (),
    team_members: Iterable[TeamMember] = (),
) -> List[HouseholdRow]:
    """Resolve lead source and producer names for display and export."""

    source_names = {source.id: source.name for source in lead_sources}
    member_names = {member.id: member.name for member in team_members}
    return [
        HouseholdRow(
            household=household,
            lead_source=source_names.get(household.lead_source_id or "", ""),
            objection=household.objection or "",
            producer=member_names.get(household.team_member_id or "", ""),
        )
        for household in households
    ]


# --- Sorting & paging ---

def _natural_key(text: str) -> List[Any]:
    return [(0, int(part)) if part.isdigit() else (1, part) for part in re.split(r"(\d+)", text.casefold()) if part]


def _sort_value(row: HouseholdRow, column: str) -> Any:
    if column == "premium":
        return row.premium_cents
    if column == "name":
        return _natural_key(row.name)
    if column == "zip":
        return _natural_key(row.household.zip_code or "")
    if column == "products":
        return _natural_key(", ".join(row.products))
    if column == "status":
        return _natural_key(row.household.status.value)
    return _natural_key(getattr(row, column))


def sort_households(rows: Sequence[HouseholdRow], criteria: Sequence[SortCriterion]) -> List[HouseholdRow]:
    """Multi-key sort; ``criteria`` is ``[(column, "asc" | "desc"), ...]`` by priority.

    Without criteria the input order is kept.
    """

    ordered = list(rows)
    for column, direction in reversed(list(criteria)):
        if column not in SORT_COLUMNS:
            raise ValueError(f"Unknown sort column '{column}'. Expected one of {', '.join(SORT_COLUMNS)}")
        if direction not in {"asc", "desc"}:
            raise ValueError(f"Sort direction must be 'asc' or 'desc', got '{direction}'")
        ordered.sort(key=lambda row: _sort_value(row, column), reverse=direction == "desc")
    return ordered


def paginate(rows: Sequence[HouseholdRow], page: int, page_size: int) -> List[HouseholdRow]:
    """Return the 1-based ``page`` of ``rows``."""

    if page < 1 or page_size < 1:
        raise ValueError("page and page_size must be positive")
    start = (page - 1) * page_size
    return list(rows[start:start + page_size])


# --- Writers ---

def export_households_csv(rows: Iterable[HouseholdRow]) -> str:
    """Render rows as CSV text with the fixed roadmap columns.

    Fields containing a comma, quote or newline are quoted and embedded
    quotes doubled; everything else is written as is.
    """

    frame = pd.DataFrame([row.export_values() for row in rows], columns=list(EXPORT_COLUMNS))
    return frame.to_csv(index=False, lineterminator="\n")


def write_households_csv(path: PathLike, rows: Iterable[HouseholdRow]) -> Path:
    output_path = Path(path)
    output_path.write_text(export_households_csv(rows), encoding="utf-8")
    return output_path


def households_to_dataframe(rows: Iterable[HouseholdRow]) -> pd.DataFrame:
    """Convert rows into a :class:`pandas.DataFrame`; premium stays numeric in dollars."""

    records = []
    for row in rows:
        values = dict(zip(EXPORT_COLUMNS, row.export_values()))
        values["Premium"] = row.premium_cents / 100
        records.append(values)
    return pd.DataFrame(records, columns=list(EXPORT_COLUMNS))


def export_households(
    rows: Sequence[HouseholdRow],
    path: PathLike,
    *,
    sheet_name: str = "Households",
    exporter_kwargs: Optional[MutableMapping[str, object]] = None,
) -> Path:
    """Write rows to ``.csv`` or ``.xlsx`` depending on the file extension."""

    output_path = Path(path)
    suffix = output_path.suffix.lower()
    if suffix == ".csv":
        return write_households_csv(output_path, rows)
    if suffix in {".xlsx", ".xlsm"}:
        kwargs = dict(exporter_kwargs or {})
        engine = kwargs.pop("engine", None) or "openpyxl"
        households_to_dataframe(rows).to_excel(output_path, index=False, sheet_name=sheet_name, engine=engine, **kwargs)
        return output_path
    raise ValueError(f"Unsupported export file extension: {suffix}")


__all__ = [
    "EXPORT_COLUMNS",
    "HouseholdRow",
    "SORT_COLUMNS",
    "build_household_rows",
    "export_households",
    "export_households_csv",
    "households_to_dataframe",
    "paginate",
    "sort_households",
    "write_households_csv",
]
