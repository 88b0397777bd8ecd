"""Data store protocol and the table-backed implementation shared by all transports."""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from ..models import Household, LeadSource, LeadSourceSpend, MarketingBucket, Quote, Sale, TeamMember
from . import records

LOGGER = logging.getLogger(__name__)

# (column, operator, value); operators: eq, neq, gte, lte, is
Filter = Tuple[str, str, Any]
Order = Tuple[str, bool]


class DataStore(Protocol):
    """Operations the pipeline needs from the relational store."""

    def find_household(self, agency_id: str, household_key: str) -> Optional[Household]:  # pragma: no cover - protocol
        ...

    def insert_household(self, household: Household) -> Household:  # pragma: no cover - protocol
        ...

    def update_household(self, household_id: str, changes: Mapping[str, Any]) -> None:  # pragma: no cover - protocol
        ...

    def find_quote(
        self, household_id: str, quote_date: Optional[date], product_type: str
    ) -> Optional[Quote]:  # pragma: no cover - protocol
        ...

    def latest_quote(self, household_id: str, product_type: str) -> Optional[Quote]:  # pragma: no cover - protocol
        ...

    def insert_quote(self, quote: Quote) -> Quote:  # pragma: no cover - protocol
        ...

    def update_quote(self, quote_id: str, changes: Mapping[str, Any]) -> None:  # pragma: no cover - protocol
        ...

    def find_sale_by_policy(self, agency_id: str, policy_number: str) -> Optional[Sale]:  # pragma: no cover - protocol
        ...

    def find_sale(
        self, household_id: str, sale_date: Optional[date], product_type: str
    ) -> Optional[Sale]:  # pragma: no cover - protocol
        ...

    def insert_sale(self, sale: Sale) -> Sale:  # pragma: no cover - protocol
        ...

    def update_sale(self, sale_id: str, changes: Mapping[str, Any]) -> None:  # pragma: no cover - protocol
        ...

    def list_team_members(self, agency_id: str) -> List[TeamMember]:  # pragma: no cover - protocol
        ...

    def list_lead_sources(self, agency_id: str) -> List[LeadSource]:  # pragma: no cover - protocol
        ...

    def list_marketing_buckets(self, agency_id: str) -> List[MarketingBucket]:  # pragma: no cover - protocol
        ...

    def list_lead_source_spend(self, agency_id: str) -> List[LeadSourceSpend]:  # pragma: no cover - protocol
        ...

    def list_households(self, agency_id: str) -> List[Household]:  # pragma: no cover - protocol
        ...

    def list_quotes(self, agency_id: str) -> List[Quote]:  # pragma: no cover - protocol
        ...

    def list_sales(self, agency_id: str) -> List[Sale]:  # pragma: no cover - protocol
        ...


class TableStore:
    """Implements :class:`DataStore` on top of three primitive table operations.

    Subclasses provide ``_select``, ``_insert`` and ``_update``; the row shapes
    and table names are the same whichever transport carries them.
    """

    def _select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        *,
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def _insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def _update(self, table: str, row_id: str, values: Mapping[str, Any]) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Households
    # ------------------------------------------------------------------
    def find_household(self, agency_id: str, household_key: str) -> Optional[Household]:
        rows = self._select(
            records.HOUSEHOLDS,
            [("agency_id", "eq", agency_id), ("household_key", "eq", household_key)],
            limit=1,
        )
        return records.household_from_row(rows[0]) if rows else None

    def insert_household(self, household: Household) -> Household:
        row = self._insert(records.HOUSEHOLDS, records.household_to_row(household))
        return records.household_from_row(row)

    def update_household(self, household_id: str, changes: Mapping[str, Any]) -> None:
        if changes:
            self._update(records.HOUSEHOLDS, household_id, records.household_changes_to_row(changes))

    def list_households(self, agency_id: str) -> List[Household]:
        agency_filter = [("agency_id", "eq", agency_id)]
        quotes_by_household: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for row in self._select(records.QUOTES, agency_filter):
            quotes_by_household[str(row.get("household_id"))].append(row)
        sales_by_household: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for row in self._select(records.SALES, agency_filter):
            sales_by_household[str(row.get("household_id"))].append(row)

        households: List[Household] = []
        for row in self._select(records.HOUSEHOLDS, agency_filter):
            household_id = str(row.get("id"))
            row = dict(row)
            row["quotes"] = quotes_by_household.get(household_id, [])
            row["sales"] = sales_by_household.get(household_id, [])
            households.append(records.household_from_row(row))
        return households

    # ------------------------------------------------------------------
    # Quotes & sales
    # ------------------------------------------------------------------
    def find_quote(self, household_id: str, quote_date: Optional[date], product_type: str) -> Optional[Quote]:
        date_filter: Filter = (
            ("quote_date", "eq", quote_date.isoformat()) if quote_date else ("quote_date", "is", None)
        )
        rows = self._select(
            records.QUOTES,
            [("household_id", "eq", household_id), date_filter, ("product_type", "eq", product_type)],
            limit=1,
        )
        return records.quote_from_row(rows[0]) if rows else None

    def latest_quote(self, household_id: str, product_type: str) -> Optional[Quote]:
        rows = self._select(
            records.QUOTES,
            [("household_id", "eq", household_id), ("product_type", "eq", product_type)],
            order=("quote_date", True),
            limit=1,
        )
        return records.quote_from_row(rows[0]) if rows else None

    def list_quotes(self, agency_id: str) -> List[Quote]:
        return [records.quote_from_row(row) for row in self._select(records.QUOTES, [("agency_id", "eq", agency_id)])]

    def list_sales(self, agency_id: str) -> List[Sale]:
        return [records.sale_from_row(row) for row in self._select(records.SALES, [("agency_id", "eq", agency_id)])]

    def insert_quote(self, quote: Quote) -> Quote:
        return records.quote_from_row(self._insert(records.QUOTES, records.quote_to_row(quote)))

    def update_quote(self, quote_id: str, changes: Mapping[str, Any]) -> None:
        if changes:
            self._update(records.QUOTES, quote_id, records.changes_to_row(changes))

    def find_sale_by_policy(self, agency_id: str, policy_number: str) -> Optional[Sale]:
        rows = self._select(
            records.SALES,
            [("agency_id", "eq", agency_id), ("policy_number", "eq", policy_number)],
            limit=1,
        )
        return records.sale_from_row(rows[0]) if rows else None

    def find_sale(self, household_id: str, sale_date: Optional[date], product_type: str) -> Optional[Sale]:
        date_filter: Filter = (
            ("sale_date", "eq", sale_date.isoformat()) if sale_date else ("sale_date", "is", None)
        )
        rows = self._select(
            records.SALES,
            [("household_id", "eq", household_id), date_filter, ("product_type", "eq", product_type)],
            limit=1,
        )
        return records.sale_from_row(rows[0]) if rows else None

    def insert_sale(self, sale: Sale) -> Sale:
        return records.sale_from_row(self._insert(records.SALES, records.sale_to_row(sale)))

    def update_sale(self, sale_id: str, changes: Mapping[str, Any]) -> None:
        if changes:
            self._update(records.SALES, sale_id, records.changes_to_row(changes))

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------
    def list_team_members(self, agency_id: str) -> List[TeamMember]:
        rows = self._select(records.TEAM_MEMBERS, [("agency_id", "eq", agency_id)])
        return [records.team_member_from_row(row) for row in rows]

    def list_lead_sources(self, agency_id: str) -> List[LeadSource]:
        rows = self._select(records.LEAD_SOURCES, [("agency_id", "eq", agency_id)])
        return [records.lead_source_from_row(row) for row in rows]

    def list_marketing_buckets(self, agency_id: str) -> List[MarketingBucket]:
        rows = self._select(records.MARKETING_BUCKETS, [("agency_id", "eq", agency_id)])
        return [records.bucket_from_row(row) for row in rows]

    def list_lead_source_spend(self, agency_id: str) -> List[LeadSourceSpend]:
        rows = self._select(records.LEAD_SOURCE_SPEND, [("agency_id", "eq", agency_id)])
        return [records.spend_from_row(row) for row in rows]


__all__ = ["DataStore", "Filter", "Order", "TableStore"]
