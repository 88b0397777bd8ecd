"""Unified data models for households, quotes, sales, and upload summaries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Set


# --- Enumerations ---

class HouseholdStatus(str, Enum):
    """Lifecycle of a household in the funnel. Order matters: it only escalates."""

    LEAD = "lead"
    QUOTED = "quoted"
    SOLD = "sold"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def escalate(self, other: "HouseholdStatus") -> "HouseholdStatus":
        """Return whichever of the two statuses is further along the funnel."""

        return other if other.rank > self.rank else self


_STATUS_RANK = {HouseholdStatus.LEAD: 0, HouseholdStatus.QUOTED: 1, HouseholdStatus.SOLD: 2}


class ImportKind(str, Enum):
    LEAD = "lead"
    QUOTE = "quote"
    SALE = "sale"

    @property
    def initial_status(self) -> HouseholdStatus:
        return {
            ImportKind.LEAD: HouseholdStatus.LEAD,
            ImportKind.QUOTE: HouseholdStatus.QUOTED,
            ImportKind.SALE: HouseholdStatus.SOLD,
        }[self]


class CostType(str, Enum):
    PER_LEAD = "per_lead"
    PER_TRANSFER = "per_transfer"
    MONTHLY_FIXED = "monthly_fixed"
    PER_MAILER = "per_mailer"


# --- Reference data ---

@dataclass(slots=True)
class MarketingBucket:
    id: str
    name: str
    agency_id: Optional[str] = None


@dataclass(slots=True)
class LeadSource:
    """A named acquisition channel, optionally rolled up into a marketing bucket."""

    id: str
    name: str
    agency_id: Optional[str] = None
    bucket_id: Optional[str] = None
    cost_type: Optional[CostType] = None
    is_self_generated: bool = False


@dataclass(slots=True)
class LeadSourceSpend:
    """Money spent on a lead source over one period."""

    lead_source_id: str
    spend_cents: int
    period_start: Optional[date] = None
    period_end: Optional[date] = None


@dataclass(slots=True)
class TeamMember:
    """Producer identity used to attribute quotes and sales."""

    id: str
    name: str
    agency_id: Optional[str] = None
    sub_producer_code: Optional[str] = None


# --- Funnel aggregates ---

@dataclass
class Quote:
    household_id: str
    agency_id: str
    product_type: str
    premium_cents: int
    quote_date: Optional[date] = None
    items_quoted: int = 1
    team_member_id: Optional[str] = None
    source: str = "manual"
    issued_policy_number: Optional[str] = None
    id: Optional[str] = None


@dataclass
class Sale:
    household_id: str
    agency_id: str
    product_type: str
    premium_cents: int
    sale_date: Optional[date] = None
    policies_sold: int = 1
    items_sold: int = 1
    team_member_id: Optional[str] = None
    source: str = "manual"
    policy_number: Optional[str] = None
    linked_quote_id: Optional[str] = None
    id: Optional[str] = None


@dataclass
class Household:
    """The unit of CRM tracking, one family identified by name and ZIP."""

    agency_id: str
    household_key: str
    first_name: str
    last_name: str
    zip_code: str
    status: HouseholdStatus = HouseholdStatus.LEAD
    phones: List[str] = field(default_factory=list)
    email: Optional[str] = None
    lead_source_id: Optional[str] = None
    team_member_id: Optional[str] = None
    objection: Optional[str] = None
    needs_attention: bool = False
    products_interested: Optional[str] = None
    lead_received_date: Optional[date] = None
    first_quote_date: Optional[date] = None
    sold_date: Optional[date] = None
    id: Optional[str] = None
    quotes: List[Quote] = field(default_factory=list)
    sales: List[Sale] = field(default_factory=list)

    def display_name(self) -> str:
        """Return "Last, First" the way the household table shows it."""

        first = (self.first_name or "").strip()
        last = (self.last_name or "").strip()
        if first and last:
            return f"{last}, {first}"
        return last or first or "(Unnamed Household)"


# --- Upload summary ---

@dataclass(slots=True)
class RowError:
    """A rejected row, tagged with its 1-based data row index."""

    row: int
    message: str

    def __str__(self) -> str:
        return f"Row {self.row}: {self.message}"


@dataclass
class UploadResult:
    """Summary of one ingestion run. Not persisted."""

    kind: ImportKind
    records_processed: int = 0
    households_created: int = 0
    households_updated: int = 0
    quotes_created: int = 0
    quotes_updated: int = 0
    sales_created: int = 0
    sales_updated: int = 0
    quotes_linked: int = 0
    team_members_matched: int = 0
    errors: List[RowError] = field(default_factory=list)
    unmatched_producers: List[str] = field(default_factory=list)
    flagged_household_keys: Set[str] = field(default_factory=set)
    created_household_ids: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def households_needing_attention(self) -> int:
        """Distinct households left without a lead source by this run."""

        return len(self.flagged_household_keys)

    @property
    def rows_skipped(self) -> int:
        return self.records_processed - self.households_created - self.households_updated

    @property
    def success(self) -> bool:
        return not self.errors or (self.households_created + self.households_updated) > 0

    def add_error(self, row: int, message: str) -> None:
        self.errors.append(RowError(row=row, message=message))

    def add_unmatched_producer(self, raw_value: str) -> None:
        if raw_value and raw_value not in self.unmatched_producers:
            self.unmatched_producers.append(raw_value)

    def as_dict(self) -> Dict[str, Any]:
        """Return a serialisable representation of the summary."""

        return {
            "kind": self.kind.value,
            "success": self.success,
            "records_processed": self.records_processed,
            "households_created": self.households_created,
            "households_updated": self.households_updated,
            "rows_skipped": self.rows_skipped,
            "quotes_created": self.quotes_created,
            "quotes_updated": self.quotes_updated,
            "sales_created": self.sales_created,
            "sales_updated": self.sales_updated,
            "quotes_linked": self.quotes_linked,
            "team_members_matched": self.team_members_matched,
            "households_needing_attention": self.households_needing_attention,
            "unmatched_producers": list(self.unmatched_producers),
            "warnings": list(self.warnings),
            "errors": [str(error) for error in self.errors],
        }


__all__ = [
    "CostType",
    "Household",
    "HouseholdStatus",
    "ImportKind",
    "LeadSource",
    "LeadSourceSpend",
    "MarketingBucket",
    "Quote",
    "RowError",
    "Sale",
    "TeamMember",
    "UploadResult",
]
