"""Data models used by the ingestion utilities."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union

from ..models import RowError

Row = Dict[str, str]


class PhoneComparison(str, Enum):
    """How two phone strings are compared when removing duplicates."""

    EXACT = "exact"
    DIGITS = "digits"

    def key(self, phone: str) -> str:
        text = phone.strip()
        if self is PhoneComparison.DIGITS:
            return "".join(character for character in text if character.isdigit())
        return text


@dataclass(slots=True)
class ParseResult:
    """Outcome of reading a spreadsheet into header-keyed rows."""

    success: bool
    headers: List[str] = field(default_factory=list)
    sample_rows: List[Row] = field(default_factory=list)
    all_rows: List[Row] = field(default_factory=list)
    total_rows: int = 0
    errors: List[str] = field(default_factory=list)
    sheet_name: Optional[str] = None


@dataclass(slots=True)
class CandidateColumn:
    header: str
    score: float


SINGLE_FIELDS = (
    "first_name",
    "last_name",
    "customer_name",
    "zip_code",
    "email",
    "product_type",
    "premium",
    "date",
    "items",
    "producer",
    "policy_number",
    "products_interested",
)
MULTI_FIELDS = ("phones",)


@dataclass
class ColumnMapping:
    """Target field to source header mapping. Every field can be overridden."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    customer_name: Optional[str] = None
    zip_code: Optional[str] = None
    phones: List[str] = field(default_factory=list)
    email: Optional[str] = None
    product_type: Optional[str] = None
    premium: Optional[str] = None
    date: Optional[str] = None
    items: Optional[str] = None
    producer: Optional[str] = None
    policy_number: Optional[str] = None
    products_interested: Optional[str] = None

    def override(self, target: str, value: Union[str, Sequence[str], None]) -> None:
        """Replace the source column(s) for ``target``; ``None`` or "" ignores the field."""

        if target in MULTI_FIELDS:
            if value is None or value == "":
                columns: List[str] = []
            elif isinstance(value, str):
                columns = [value]
            else:
                columns = [str(item) for item in value if item]
            setattr(self, target, columns)
            return
        if target not in SINGLE_FIELDS:
            raise KeyError(f"Unknown mapping target '{target}'")
        if value is not None and not isinstance(value, str):
            raise TypeError(f"Mapping target '{target}' accepts a single column")
        setattr(self, target, value or None)

    def as_dict(self) -> Dict[str, Union[str, List[str], None]]:
        data: Dict[str, Union[str, List[str], None]] = {name: getattr(self, name) for name in SINGLE_FIELDS}
        data["phones"] = list(self.phones)
        return data


@dataclass(slots=True)
class ProducerRef:
    """Sub-producer cell split into its code and name parts."""

    raw: str = ""
    code: Optional[str] = None
    name: Optional[str] = None


@dataclass(slots=True)
class NormalizedRecord:
    """A validated row. Lead, quote and sale imports share the same shape."""

    row_number: int
    household_key: str
    first_name: str
    last_name: str
    zip_code: str
    phones: List[str] = field(default_factory=list)
    email: Optional[str] = None
    product_type: Optional[str] = None
    premium_cents: Optional[int] = None
    record_date: Optional[date] = None
    items: int = 1
    producer: ProducerRef = field(default_factory=ProducerRef)
    policy_number: Optional[str] = None
    products_interested: Optional[str] = None


@dataclass(slots=True)
class NormalizeResult:
    records: List[NormalizedRecord] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.records) + len(self.errors)


__all__ = [
    "CandidateColumn",
    "ColumnMapping",
    "NormalizeResult",
    "NormalizedRecord",
    "ParseResult",
    "PhoneComparison",
    "ProducerRef",
    "Row",
]
