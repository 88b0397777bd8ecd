"""Producer breakdowns: who quoted, who sold, and against which lead sources."""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..models import Household, LeadSource, TeamMember
from .funnel import UNASSIGNED, UNATTRIBUTED, ratio

UNATTRIBUTED_COLUMN = "unattributed"


@dataclass
class ProducerMetrics:
    team_member_id: Optional[str]
    name: str
    quoted_households: int = 0
    quoted_policies: int = 0
    quoted_items: int = 0
    quoted_premium_cents: int = 0
    sold_households: int = 0
    sold_policies: int = 0
    sold_items: int = 0
    sold_premium_cents: int = 0
    close_ratio: Optional[float] = None
    bundle_ratio: Optional[float] = None


@dataclass
class ProducerBreakdown:
    by_quoted_by: List[ProducerMetrics] = field(default_factory=list)
    by_sold_by: List[ProducerMetrics] = field(default_factory=list)
    totals: ProducerMetrics = field(default_factory=lambda: ProducerMetrics(team_member_id=None, name="Total"))


def _member_name(member_id: Optional[str], names: Dict[str, str]) -> str:
    if not member_id:
        return UNASSIGNED
    return names.get(member_id, "Unknown")


def producer_breakdown(households: Iterable[Household], team_members: Iterable[TeamMember] = ()) -> ProducerBreakdown:
    """Quoted-by and sold-by metrics per producer.

    Quoted-by close ratio is the share of a producer's quoted households that
    sold (by anyone); sold-by close ratio is the producer's sold households
    over every quoted household.
    """

    names = {member.id: member.name for member in team_members}
    households = list(households)

    products_by_household: Dict[str, Set[str]] = defaultdict(set)
    sold_ids: Set[str] = set()
    quoted_ids: Set[str] = set()
    quoted_by: Dict[Optional[str], ProducerMetrics] = {}
    quoted_households_by: Dict[Optional[str], Set[str]] = defaultdict(set)
    sold_by: Dict[Optional[str], ProducerMetrics] = {}
    sold_households_by: Dict[Optional[str], Set[str]] = defaultdict(set)
    totals = ProducerMetrics(team_member_id=None, name="Total")

    for household in households:
        household_id = household.id or household.household_key
        for quote in household.quotes:
            metrics = quoted_by.setdefault(
                quote.team_member_id, ProducerMetrics(quote.team_member_id, _member_name(quote.team_member_id, names))
            )
            quoted_households_by[quote.team_member_id].add(household_id)
            quoted_ids.add(household_id)
            metrics.quoted_policies += 1
            metrics.quoted_items += quote.items_quoted or 1
            metrics.quoted_premium_cents += quote.premium_cents or 0
            totals.quoted_policies += 1
            totals.quoted_items += quote.items_quoted or 1
            totals.quoted_premium_cents += quote.premium_cents or 0
        for sale in household.sales:
            metrics = sold_by.setdefault(
                sale.team_member_id, ProducerMetrics(sale.team_member_id, _member_name(sale.team_member_id, names))
            )
            sold_households_by[sale.team_member_id].add(household_id)
            sold_ids.add(household_id)
            if sale.product_type:
                products_by_household[household_id].add(sale.product_type)
            metrics.sold_policies += sale.policies_sold or 1
            metrics.sold_items += sale.items_sold or 1
            metrics.sold_premium_cents += sale.premium_cents or 0
            totals.sold_policies += sale.policies_sold or 1
            totals.sold_items += sale.items_sold or 1
            totals.sold_premium_cents += sale.premium_cents or 0

    def bundled(ids: Iterable[str]) -> int:
        return sum(1 for household_id in ids if len(products_by_household.get(household_id, ())) >= 2)

    for member_id, metrics in quoted_by.items():
        quoted = quoted_households_by[member_id]
        quoted_that_sold = quoted & sold_ids
        metrics.quoted_households = len(quoted)
        metrics.sold_households = len(quoted_that_sold)
        metrics.close_ratio = ratio(len(quoted_that_sold), len(quoted))
        metrics.bundle_ratio = ratio(bundled(quoted_that_sold), len(quoted_that_sold))

    for member_id, metrics in sold_by.items():
        sold = sold_households_by[member_id]
        metrics.sold_households = len(sold)
        metrics.close_ratio = ratio(len(sold), len(quoted_ids))
        metrics.bundle_ratio = ratio(bundled(sold), len(sold))

    totals.quoted_households = len(quoted_ids)
    totals.sold_households = len(sold_ids)
    totals.close_ratio = ratio(len(quoted_ids & sold_ids), len(quoted_ids))
    totals.bundle_ratio = ratio(bundled(sold_ids), len(sold_ids))

    return ProducerBreakdown(
        by_quoted_by=sorted(quoted_by.values(), key=lambda item: (-item.quoted_households, item.name)),
        by_sold_by=sorted(sold_by.values(), key=lambda item: (-item.sold_premium_cents, item.name)),
        totals=totals,
    )


# --- Producer x lead source ---

@dataclass
class CrossTabCell:
    quoted_households: int = 0
    sold_households: int = 0
    premium_cents: int = 0

    @property
    def close_rate(self) -> Optional[float]:
        return ratio(self.sold_households, self.quoted_households)


@dataclass
class CrossTabRow:
    team_member_id: Optional[str]
    producer_name: str
    cells: Dict[str, CrossTabCell] = field(default_factory=dict)
    total: CrossTabCell = field(default_factory=CrossTabCell)


@dataclass
class CrossTab:
    rows: List[CrossTabRow]
    columns: List[Tuple[str, str]]
    column_totals: Dict[str, CrossTabCell]
    grand_total: CrossTabCell


def producer_lead_source_crosstab(
    households: Iterable[Household],
    *,
    lead_sources: Iterable[LeadSource] = (),
    team_members: Iterable[TeamMember] = (),
    by_bucket: bool = False,
    bucket_names: Optional[Dict[str, str]] = None,
) -> CrossTab:
    """Quoted / sold households and premium per (producer, lead source) pair.

    Quoted households are attributed to the quoting producer, sold households
    and premium to the selling producer. With ``by_bucket`` the columns are
    marketing buckets instead of lead sources.
    """

    names = {member.id: member.name for member in team_members}
    sources = {source.id: source for source in lead_sources}
    bucket_names = bucket_names or {}

    def column_for(household: Household) -> Tuple[str, str]:
        source = sources.get(household.lead_source_id or "")
        if source is None:
            return UNATTRIBUTED_COLUMN, UNATTRIBUTED
        if by_bucket:
            if not source.bucket_id:
                return UNATTRIBUTED_COLUMN, UNATTRIBUTED
            return source.bucket_id, bucket_names.get(source.bucket_id, "Unknown")
        return source.id, source.name

    quoted: Dict[Tuple[Optional[str], str], Set[str]] = defaultdict(set)
    sold: Dict[Tuple[Optional[str], str], Set[str]] = defaultdict(set)
    premium: Dict[Tuple[Optional[str], str], int] = defaultdict(int)
    columns: Dict[str, str] = {}
    producers: Set[Optional[str]] = set()

    for household in households:
        household_id = household.id or household.household_key
        column_id, column_name = column_for(household)
        for quote in household.quotes:
            quoted[(quote.team_member_id, column_id)].add(household_id)
            producers.add(quote.team_member_id)
            columns[column_id] = column_name
        for sale in household.sales:
            sold[(sale.team_member_id, column_id)].add(household_id)
            premium[(sale.team_member_id, column_id)] += sale.premium_cents or 0
            producers.add(sale.team_member_id)
            columns[column_id] = column_name

    rows: List[CrossTabRow] = []
    column_totals: Dict[str, CrossTabCell] = {column_id: CrossTabCell() for column_id in columns}
    grand_total = CrossTabCell()
    # a household quoted or sold by two producers counts once per column and once overall
    column_quoted: Dict[str, Set[str]] = defaultdict(set)
    column_sold: Dict[str, Set[str]] = defaultdict(set)
    for member_id in producers:
        row = CrossTabRow(team_member_id=member_id, producer_name=_member_name(member_id, names))
        for column_id in columns:
            key = (member_id, column_id)
            if key not in quoted and key not in sold:
                continue
            cell = CrossTabCell(
                quoted_households=len(quoted.get(key, ())),
                sold_households=len(sold.get(key, ())),
                premium_cents=premium.get(key, 0),
            )
            row.cells[column_id] = cell
            row.total.quoted_households += cell.quoted_households
            row.total.sold_households += cell.sold_households
            column_quoted[column_id].update(quoted.get(key, ()))
            column_sold[column_id].update(sold.get(key, ()))
            for total in (row.total, column_totals[column_id], grand_total):
                total.premium_cents += cell.premium_cents
        rows.append(row)

    for column_id, total in column_totals.items():
        total.quoted_households = len(column_quoted[column_id])
        total.sold_households = len(column_sold[column_id])
    grand_total.quoted_households = len(set().union(*column_quoted.values()))
    grand_total.sold_households = len(set().union(*column_sold.values()))

    rows.sort(key=lambda row: (-row.total.premium_cents, row.producer_name))
    ordered_columns = sorted(columns.items(), key=lambda item: (item[0] == UNATTRIBUTED_COLUMN, item[1]))
    return CrossTab(rows=rows, columns=ordered_columns, column_totals=column_totals, grand_total=grand_total)


__all__ = [
    "CrossTab",
    "CrossTabCell",
    "CrossTabRow",
    "ProducerBreakdown",
    "ProducerMetrics",
    "producer_breakdown",
    "producer_lead_source_crosstab",
]
