"""Why quoted households did not buy: objection frequency by source, producer and month."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..models import Household, HouseholdStatus, LeadSource, TeamMember
from .funnel import UNASSIGNED, ratio

# Below this many objections the breakdowns are too thin to act on.
MIN_OBJECTIONS = 5


@dataclass
class ObjectionFrequency:
    objection: str
    total: int = 0
    still_lead: int = 0
    still_quoted: int = 0
    sold_despite: int = 0


@dataclass
class ObjectionGroup:
    """Objections within one lead source or producer."""

    group_id: Optional[str]
    name: str
    non_sold: int = 0
    with_objection: int = 0
    objection_counts: Counter = field(default_factory=Counter, repr=False)

    @property
    def objection_rate(self) -> Optional[float]:
        return ratio(self.with_objection, self.non_sold)

    @property
    def top_objection(self) -> Optional[str]:
        if not self.objection_counts:
            return None
        return self.objection_counts.most_common(1)[0][0]


@dataclass
class ObjectionTrendPoint:
    month: str
    total_households: int = 0
    with_objection: int = 0

    @property
    def objection_rate(self) -> Optional[float]:
        return ratio(self.with_objection, self.total_households)


@dataclass
class ObjectionAnalysis:
    total_households: int = 0
    total_non_sold: int = 0
    with_objection: int = 0
    frequencies: List[ObjectionFrequency] = field(default_factory=list)
    by_source: List[ObjectionGroup] = field(default_factory=list)
    by_producer: List[ObjectionGroup] = field(default_factory=list)
    trend: List[ObjectionTrendPoint] = field(default_factory=list)

    @property
    def without_objection(self) -> int:
        return self.total_households - self.with_objection

    @property
    def objection_rate(self) -> Optional[float]:
        return ratio(self.with_objection, self.total_households)

    @property
    def has_sufficient_data(self) -> bool:
        return self.with_objection >= MIN_OBJECTIONS


def primary_producer(household: Household) -> Optional[str]:
    """Team member on the household's earliest quote."""

    dated = [quote for quote in household.quotes if quote.quote_date is not None]
    candidates = sorted(dated, key=lambda quote: quote.quote_date) or household.quotes
    return candidates[0].team_member_id if candidates else None


def _grouped(
    households: List[Household],
    key: Callable[[Household], Optional[str]],
    name: Callable[[Optional[str]], str],
) -> List[ObjectionGroup]:
    groups: Dict[Optional[str], ObjectionGroup] = {}
    for household in households:
        group_id = key(household)
        group = groups.setdefault(group_id, ObjectionGroup(group_id=group_id, name=name(group_id)))
        if household.status is not HouseholdStatus.SOLD:
            group.non_sold += 1
        if household.objection:
            group.with_objection += 1
            group.objection_counts[household.objection] += 1
    return sorted(groups.values(), key=lambda group: (-group.with_objection, group.name))


def objection_analysis(
    households: Iterable[Household],
    *,
    lead_sources: Iterable[LeadSource] = (),
    team_members: Iterable[TeamMember] = (),
    period: Optional[Tuple[date, date]] = None,
) -> ObjectionAnalysis:
    """Objection counts over quoted households.

    Only households with a first quote date are considered, limited to
    ``period`` when one is given. Group rates are objections over non-sold
    households; the overall rate is over every quoted household.
    """

    source_names = {source.id: source.name for source in lead_sources}
    member_names = {member.id: member.name for member in team_members}

    quoted = [
        household
        for household in households
        if household.first_quote_date is not None
        and (period is None or period[0] <= household.first_quote_date <= period[1])
    ]

    analysis = ObjectionAnalysis(total_households=len(quoted))
    frequencies: Dict[str, ObjectionFrequency] = {}
    trend: Dict[str, ObjectionTrendPoint] = {}
    for household in quoted:
        if household.status is not HouseholdStatus.SOLD:
            analysis.total_non_sold += 1

        month = household.first_quote_date.strftime("%Y-%m")
        point = trend.setdefault(month, ObjectionTrendPoint(month=month))
        point.total_households += 1

        if not household.objection:
            continue
        analysis.with_objection += 1
        point.with_objection += 1
        entry = frequencies.setdefault(household.objection, ObjectionFrequency(objection=household.objection))
        entry.total += 1
        if household.status is HouseholdStatus.LEAD:
            entry.still_lead += 1
        elif household.status is HouseholdStatus.QUOTED:
            entry.still_quoted += 1
        else:
            entry.sold_despite += 1

    analysis.frequencies = sorted(frequencies.values(), key=lambda entry: (-entry.total, entry.objection))
    analysis.trend = [trend[month] for month in sorted(trend)]
    analysis.by_source = _grouped(
        quoted,
        lambda household: household.lead_source_id,
        lambda source_id: source_names.get(source_id, "Unknown") if source_id else UNASSIGNED,
    )
    analysis.by_producer = _grouped(
        quoted,
        primary_producer,
        lambda member_id: member_names.get(member_id, "Unknown") if member_id else UNASSIGNED,
    )
    return analysis


__all__ = [
    "MIN_OBJECTIONS",
    "ObjectionAnalysis",
    "ObjectionFrequency",
    "ObjectionGroup",
    "ObjectionTrendPoint",
    "objection_analysis",
    "primary_producer",
]
