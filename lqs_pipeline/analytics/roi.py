"""Lead source and marketing bucket return on investment."""
from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from ..models import Household, HouseholdStatus, LeadSource, LeadSourceSpend, MarketingBucket
from .funnel import UNATTRIBUTED, is_bundled, ratio

NO_BUCKET = "No Bucket"


@dataclass
class LeadSourceRoiRow:
    """Pipeline metrics for one lead source; money in cents, ratios as fractions."""

    lead_source_id: Optional[str]
    lead_source_name: str
    bucket_id: Optional[str] = None
    bucket_name: Optional[str] = None
    is_self_generated: bool = False
    spend_cents: int = 0
    total_leads: int = 0
    quoted_households: int = 0
    sold_households: int = 0
    bundled_households: int = 0
    premium_cents: int = 0
    commission_cents: int = 0
    quoted_policies: int = 0
    quoted_items: int = 0
    written_policies: int = 0
    written_items: int = 0

    def _cost(self, count: int) -> Optional[float]:
        if self.is_self_generated:
            return None
        return ratio(self.spend_cents, count)

    @property
    def roi(self) -> Optional[float]:
        """Commission earned per cent spent."""

        return ratio(self.commission_cents, self.spend_cents)

    @property
    def cost_per_sale(self) -> Optional[float]:
        return self._cost(self.sold_households)

    @property
    def cost_per_quoted_household(self) -> Optional[float]:
        return self._cost(self.quoted_households)

    @property
    def cost_per_quoted_policy(self) -> Optional[float]:
        return self._cost(self.quoted_policies)

    @property
    def cost_per_quoted_item(self) -> Optional[float]:
        return self._cost(self.quoted_items)

    @property
    def household_acquisition_cost(self) -> Optional[float]:
        return self._cost(self.sold_households)

    @property
    def policy_acquisition_cost(self) -> Optional[float]:
        return self._cost(self.written_policies)

    @property
    def item_acquisition_cost(self) -> Optional[float]:
        return self._cost(self.written_items)

    @property
    def close_ratio(self) -> Optional[float]:
        return ratio(self.sold_households, self.quoted_households)

    @property
    def bundle_ratio(self) -> Optional[float]:
        return ratio(self.bundled_households, self.sold_households)

    def as_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = asdict(self)
        for name in (
            "roi",
            "cost_per_sale",
            "cost_per_quoted_household",
            "cost_per_quoted_policy",
            "cost_per_quoted_item",
            "household_acquisition_cost",
            "policy_acquisition_cost",
            "item_acquisition_cost",
            "close_ratio",
            "bundle_ratio",
        ):
            data[name] = getattr(self, name)
        return data


@dataclass
class BucketRoiRow:
    bucket_id: Optional[str]
    bucket_name: str
    spend_cents: int = 0
    total_leads: int = 0
    quoted_households: int = 0
    sold_households: int = 0
    paid_sold_households: int = 0
    premium_cents: int = 0
    commission_cents: int = 0

    @property
    def roi(self) -> Optional[float]:
        return ratio(self.commission_cents, self.spend_cents)

    @property
    def cost_per_sale(self) -> Optional[float]:
        """Spend per sale from the bucket's paid sources; self-generated sales are left out."""

        return ratio(self.spend_cents, self.paid_sold_households)

    @property
    def close_ratio(self) -> Optional[float]:
        return ratio(self.sold_households, self.quoted_households)


def _spend_in_period(spend: LeadSourceSpend, period: Optional[Tuple[date, date]]) -> bool:
    if period is None:
        return True
    start, end = period
    if spend.period_start is not None and spend.period_start > end:
        return False
    if spend.period_end is not None and spend.period_end < start:
        return False
    return True


def _in_period(value: Optional[date], period: Tuple[date, date]) -> bool:
    return value is not None and period[0] <= value <= period[1]


def lead_source_roi(
    households: Iterable[Household],
    lead_sources: Iterable[LeadSource] = (),
    *,
    buckets: Iterable[MarketingBucket] = (),
    spend: Iterable[LeadSourceSpend] = (),
    commission_rate: float = 0.22,
    period: Optional[Tuple[date, date]] = None,
    activity: bool = False,
) -> List[LeadSourceRoiRow]:
    """Per-source funnel and cost metrics, highest premium first.

    Households without a lead source are grouped under ``"Unattributed"``;
    spend rows are limited to ``period`` when one is given.

    By default every household counts by its current status. With
    ``activity=True`` only what happened inside ``period`` counts: leads by
    their received date, quotes by quote date and sales by sale date, so a
    household quoted last month and sold this month is a sale of this month.
    """

    if activity and period is None:
        raise ValueError("activity mode needs a period")

    sources = {source.id: source for source in lead_sources}
    bucket_names = {bucket.id: bucket.name for bucket in buckets}
    spend_by_source: Dict[Optional[str], int] = defaultdict(int)
    for item in spend:
        if _spend_in_period(item, period):
            spend_by_source[item.lead_source_id] += item.spend_cents

    rows: Dict[Optional[str], LeadSourceRoiRow] = {}

    def row_for(source_id: Optional[str]) -> LeadSourceRoiRow:
        if source_id not in rows:
            source = sources.get(source_id or "")
            bucket_id = source.bucket_id if source else None
            rows[source_id] = LeadSourceRoiRow(
                lead_source_id=source_id,
                lead_source_name=(source.name if source else "Unknown") if source_id else UNATTRIBUTED,
                bucket_id=bucket_id,
                bucket_name=bucket_names.get(bucket_id) if bucket_id else None,
                is_self_generated=bool(source and source.is_self_generated),
                spend_cents=spend_by_source.get(source_id, 0),
            )
        return rows[source_id]

    for household in households:
        if activity:
            _count_activity(row_for, household, period)
            continue
        row = row_for(household.lead_source_id)
        row.total_leads += 1
        row.quoted_policies += len(household.quotes)
        row.quoted_items += sum(quote.items_quoted or 1 for quote in household.quotes)
        if household.status in (HouseholdStatus.QUOTED, HouseholdStatus.SOLD):
            row.quoted_households += 1
        if household.status is HouseholdStatus.SOLD:
            row.sold_households += 1
            row.premium_cents += sum(sale.premium_cents or 0 for sale in household.sales)
            row.written_policies += sum(sale.policies_sold or 1 for sale in household.sales)
            row.written_items += sum(sale.items_sold or 1 for sale in household.sales)
            if is_bundled(household):
                row.bundled_households += 1

    # sources with spend but no households still show up
    for source_id in spend_by_source:
        row_for(source_id)

    for row in rows.values():
        row.commission_cents = round(row.premium_cents * commission_rate)
    return sorted(rows.values(), key=lambda row: (-row.premium_cents, row.lead_source_name))


def _count_activity(row_for, household: Household, period: Tuple[date, date]) -> None:
    lead = _in_period(household.lead_received_date, period)
    quotes = [quote for quote in household.quotes if _in_period(quote.quote_date, period)]
    sales = [sale for sale in household.sales if _in_period(sale.sale_date, period)]
    if not (lead or quotes or sales):
        return

    row = row_for(household.lead_source_id)
    row.total_leads += int(lead)
    if quotes:
        row.quoted_households += 1
        row.quoted_policies += len(quotes)
        row.quoted_items += sum(quote.items_quoted or 1 for quote in quotes)
    if sales:
        row.sold_households += 1
        row.premium_cents += sum(sale.premium_cents or 0 for sale in sales)
        row.written_policies += sum(sale.policies_sold or 1 for sale in sales)
        row.written_items += sum(sale.items_sold or 1 for sale in sales)
        if len({sale.product_type for sale in sales if sale.product_type}) >= 2:
            row.bundled_households += 1


def bucket_roi(rows: Sequence[LeadSourceRoiRow]) -> List[BucketRoiRow]:
    """Roll lead source rows up into their marketing buckets."""

    buckets: Dict[Optional[str], BucketRoiRow] = {}
    for row in rows:
        bucket = buckets.setdefault(
            row.bucket_id,
            BucketRoiRow(bucket_id=row.bucket_id, bucket_name=row.bucket_name or NO_BUCKET),
        )
        bucket.spend_cents += row.spend_cents
        bucket.total_leads += row.total_leads
        bucket.quoted_households += row.quoted_households
        bucket.sold_households += row.sold_households
        if not row.is_self_generated:
            bucket.paid_sold_households += row.sold_households
        bucket.premium_cents += row.premium_cents
        bucket.commission_cents += row.commission_cents
    return sorted(buckets.values(), key=lambda bucket: (-bucket.premium_cents, bucket.bucket_name))


def roi_dataframe(rows: Sequence[LeadSourceRoiRow]) -> pd.DataFrame:
    """Tabular view of :func:`lead_source_roi` output with dollars instead of cents."""

    frame = pd.DataFrame([row.as_dict() for row in rows])
    if frame.empty:
        return frame
    for column in ("spend_cents", "premium_cents", "commission_cents"):
        frame[column.replace("_cents", "")] = frame.pop(column) / 100
    return frame


__all__ = ["BucketRoiRow", "LeadSourceRoiRow", "NO_BUCKET", "bucket_roi", "lead_source_roi", "roi_dataframe"]
