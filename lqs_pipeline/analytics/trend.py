"""Month by month performance per marketing bucket."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Set

import pandas as pd

from ..models import Household, LeadSource, LeadSourceSpend, MarketingBucket
from .funnel import UNATTRIBUTED, ratio

ALL_SOURCES = "All Sources"
MONTHS_SHOWN = 12


@dataclass
class MonthlyPerformance:
    month: str
    leads_received: int = 0
    premium_cents: int = 0
    spend_cents: int = 0
    commission_cents: int = 0
    quoted_ids: Set[str] = field(default_factory=set, repr=False)
    sold_ids: Set[str] = field(default_factory=set, repr=False)

    @property
    def quoted_households(self) -> int:
        return len(self.quoted_ids)

    @property
    def sold_households(self) -> int:
        return len(self.sold_ids)

    @property
    def roi(self) -> Optional[float]:
        return ratio(self.commission_cents, self.spend_cents)

    @property
    def close_rate(self) -> Optional[float]:
        return ratio(self.sold_households, self.quoted_households)


@dataclass
class BucketTrend:
    bucket_id: Optional[str]
    bucket_name: str
    months: List[MonthlyPerformance] = field(default_factory=list)


def month_keys(end: date, count: int = MONTHS_SHOWN) -> List[str]:
    """``YYYY-MM`` keys for the ``count`` months ending with ``end``'s month, oldest first."""

    return [str(period) for period in pd.period_range(end=pd.Period(end, freq="M"), periods=count, freq="M")]


def _month(value: Optional[date]) -> Optional[str]:
    return value.strftime("%Y-%m") if value is not None else None


def performance_trend(
    households: Iterable[Household],
    lead_sources: Iterable[LeadSource] = (),
    *,
    buckets: Iterable[MarketingBucket] = (),
    spend: Iterable[LeadSourceSpend] = (),
    end: Optional[date] = None,
    months: int = MONTHS_SHOWN,
    commission_rate: float = 0.22,
) -> List[BucketTrend]:
    """Leads, quoted and sold households, premium and spend per bucket per month.

    Leads count by received date, quotes by quote date and sales by sale
    date; a household quoted twice in one month counts once. Spend is placed
    in the month its period starts. The first series is ``"All Sources"``,
    then each bucket in the given order, then unbucketed sources as
    ``"Unattributed"`` when there are any.
    """

    keys = month_keys(end or date.today(), months)
    source_buckets = {source.id: source.bucket_id for source in lead_sources}

    series: Dict[object, Dict[str, MonthlyPerformance]] = {}

    def cells(bucket_key: object, month: Optional[str]) -> List[MonthlyPerformance]:
        if month not in keys:
            return []
        found = []
        for key in (ALL_SOURCES, bucket_key):
            months_for = series.setdefault(key, {name: MonthlyPerformance(month=name) for name in keys})
            found.append(months_for[month])
        return found

    def bucket_of(source_id: Optional[str]) -> Optional[str]:
        return source_buckets.get(source_id) if source_id else None

    for household in households:
        household_id = household.id or household.household_key
        bucket_key = bucket_of(household.lead_source_id)
        for cell in cells(bucket_key, _month(household.lead_received_date)):
            cell.leads_received += 1
        for quote in household.quotes:
            for cell in cells(bucket_key, _month(quote.quote_date)):
                cell.quoted_ids.add(household_id)
        for sale in household.sales:
            for cell in cells(bucket_key, _month(sale.sale_date)):
                cell.sold_ids.add(household_id)
                cell.premium_cents += sale.premium_cents or 0

    for item in spend:
        for cell in cells(bucket_of(item.lead_source_id), _month(item.period_start)):
            cell.spend_cents += item.spend_cents

    def months_of(key: object) -> List[MonthlyPerformance]:
        if key not in series:
            return [MonthlyPerformance(month=name) for name in keys]
        return list(series[key].values())

    ordered = [BucketTrend(bucket_id=None, bucket_name=ALL_SOURCES, months=months_of(ALL_SOURCES))]
    for bucket in buckets:
        ordered.append(BucketTrend(bucket_id=bucket.id, bucket_name=bucket.name, months=months_of(bucket.id)))
    if None in series:
        ordered.append(BucketTrend(bucket_id=None, bucket_name=UNATTRIBUTED, months=months_of(None)))

    for trend in ordered:
        for cell in trend.months:
            cell.commission_cents = round(cell.premium_cents * commission_rate)
    return ordered


__all__ = ["ALL_SOURCES", "BucketTrend", "MONTHS_SHOWN", "MonthlyPerformance", "month_keys", "performance_trend"]
