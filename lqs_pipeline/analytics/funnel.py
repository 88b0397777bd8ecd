"""Funnel totals and time-to-close statistics over fetched households."""
from __future__ import annotations

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import Household, HouseholdStatus, LeadSource, TeamMember

UNATTRIBUTED = "Unattributed"
UNASSIGNED = "Unassigned"

DISTRIBUTION_BUCKETS: Sequence[Tuple[str, int, Optional[int]]] = (
    ("< 7 days", 0, 6),
    ("7-14 days", 7, 14),
    ("14-30 days", 15, 30),
    ("30-60 days", 31, 60),
    ("60+ days", 61, None),
)


def ratio(numerator: float, denominator: float) -> Optional[float]:
    """``numerator / denominator``, or ``None`` when the denominator is zero."""

    return numerator / denominator if denominator else None


def product_types(household: Household) -> set[str]:
    return {sale.product_type for sale in household.sales if sale.product_type}


def is_bundled(household: Household) -> bool:
    """A sold household with two or more distinct products."""

    return len(product_types(household)) >= 2


@dataclass(slots=True)
class FunnelSummary:
    total_households: int = 0
    open_leads: int = 0
    quoted_households: int = 0
    sold_households: int = 0
    premium_sold_cents: int = 0
    quoted_policies: int = 0
    quoted_items: int = 0
    written_policies: int = 0
    written_items: int = 0
    bundled_households: int = 0

    @property
    def total_quoted(self) -> int:
        """Households that reached at least the quoted stage."""

        return self.quoted_households + self.sold_households

    @property
    def quote_rate(self) -> Optional[float]:
        return ratio(self.total_quoted, self.total_households)

    @property
    def close_rate(self) -> Optional[float]:
        return ratio(self.sold_households, self.total_quoted)

    @property
    def bundle_ratio(self) -> Optional[float]:
        return ratio(self.bundled_households, self.sold_households)


def funnel_summary(households: Iterable[Household]) -> FunnelSummary:
    summary = FunnelSummary()
    for household in households:
        summary.total_households += 1
        if household.status is HouseholdStatus.LEAD:
            summary.open_leads += 1
        elif household.status is HouseholdStatus.QUOTED:
            summary.quoted_households += 1
        else:
            summary.sold_households += 1
            summary.premium_sold_cents += sum(sale.premium_cents or 0 for sale in household.sales)
            summary.written_policies += sum(sale.policies_sold or 1 for sale in household.sales)
            summary.written_items += sum(sale.items_sold or 1 for sale in household.sales)
            if is_bundled(household):
                summary.bundled_households += 1
        summary.quoted_policies += len(household.quotes)
        summary.quoted_items += sum(quote.items_quoted or 1 for quote in household.quotes)
    return summary


# --- Time to close ---

@dataclass(slots=True)
class CloseTimeGroup:
    key: Optional[str]
    name: str
    count: int
    average_days: int
    median_days: int


@dataclass
class TimeToClose:
    closed_deals: int = 0
    average_days: int = 0
    median_days: int = 0
    one_call_closes: int = 0
    stale_quotes: int = 0
    distribution: List[Tuple[str, int]] = field(default_factory=list)
    by_source: List[CloseTimeGroup] = field(default_factory=list)
    by_producer: List[CloseTimeGroup] = field(default_factory=list)

    @property
    def one_call_close_rate(self) -> Optional[float]:
        return ratio(self.one_call_closes, self.closed_deals)


def days_to_close(household: Household) -> Optional[int]:
    """Days from first quote (or lead receipt) to sale; ``None`` when unknown or negative."""

    if household.sold_date is None:
        return None
    start = household.first_quote_date or household.lead_received_date
    if start is None:
        return None
    days = (household.sold_date - start).days
    return days if days >= 0 else None


def _groups(values: Dict[Optional[str], List[int]], names: Dict[str, str], fallback: str) -> List[CloseTimeGroup]:
    groups = [
        CloseTimeGroup(
            key=key,
            name=names.get(key, "Unknown") if key else fallback,
            count=len(days),
            average_days=round(statistics.fmean(days)),
            median_days=round(statistics.median(days)),
        )
        for key, days in values.items()
    ]
    return sorted(groups, key=lambda group: (-group.count, group.name))


def time_to_close(
    households: Iterable[Household],
    *,
    lead_sources: Iterable[LeadSource] = (),
    team_members: Iterable[TeamMember] = (),
    as_of: Optional[date] = None,
    stale_after_days: int = 30,
) -> TimeToClose:
    """Days-to-close statistics for sold households.

    Quoted households whose first quote is older than ``stale_after_days``
    (relative to ``as_of``) are counted as stale.
    """

    source_names = {source.id: source.name for source in lead_sources}
    member_names = {member.id: member.name for member in team_members}
    stale_before = (as_of or date.today()) - timedelta(days=stale_after_days)

    report = TimeToClose()
    all_days: List[int] = []
    by_source: Dict[Optional[str], List[int]] = defaultdict(list)
    by_producer: Dict[Optional[str], List[int]] = defaultdict(list)
    for household in households:
        if household.status is HouseholdStatus.QUOTED:
            if household.first_quote_date is not None and household.first_quote_date < stale_before:
                report.stale_quotes += 1
            continue
        days = days_to_close(household)
        if household.status is not HouseholdStatus.SOLD or days is None:
            continue
        all_days.append(days)
        by_source[household.lead_source_id].append(days)
        by_producer[household.team_member_id].append(days)

    report.closed_deals = len(all_days)
    report.one_call_closes = sum(1 for days in all_days if days == 0)
    if all_days:
        report.average_days = round(statistics.fmean(all_days))
        report.median_days = round(statistics.median(all_days))
    report.distribution = [
        (label, sum(1 for days in all_days if days >= low and (high is None or days <= high)))
        for label, low, high in DISTRIBUTION_BUCKETS
    ]
    report.by_source = _groups(by_source, source_names, UNATTRIBUTED)
    report.by_producer = _groups(by_producer, member_names, UNASSIGNED)
    return report


__all__ = [
    "CloseTimeGroup",
    "FunnelSummary",
    "TimeToClose",
    "UNASSIGNED",
    "UNATTRIBUTED",
    "days_to_close",
    "funnel_summary",
    "is_bundled",
    "ratio",
    "time_to_close",
]
