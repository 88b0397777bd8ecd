"""Conversion between domain dataclasses and store rows."""
from __future__ import annotations

from dataclasses import fields
from datetime import date
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from ..models import (
    CostType,
    Household,
    HouseholdStatus,
    LeadSource,
    LeadSourceSpend,
    MarketingBucket,
    Quote,
    Sale,
    TeamMember,
)

HOUSEHOLDS = "lqs_households"
QUOTES = "lqs_quotes"
SALES = "lqs_sales"
TEAM_MEMBERS = "team_members"
LEAD_SOURCES = "lqs_lead_sources"
MARKETING_BUCKETS = "lqs_marketing_buckets"
LEAD_SOURCE_SPEND = "lqs_lead_source_spend"

# attribute name -> column name where they differ
_HOUSEHOLD_COLUMNS = {"phones": "phone"}
_HOUSEHOLD_CHILDREN = {"quotes", "sales"}


def serialise(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [serialise(item) for item in value]
    return value


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def household_changes_to_row(changes: Mapping[str, Any]) -> Dict[str, Any]:
    return {_HOUSEHOLD_COLUMNS.get(name, name): serialise(value) for name, value in changes.items()}


def changes_to_row(changes: Mapping[str, Any]) -> Dict[str, Any]:
    return {name: serialise(value) for name, value in changes.items()}


def household_to_row(household: Household) -> Dict[str, Any]:
    row: Dict[str, Any] = {}
    for item in fields(household):
        if item.name in _HOUSEHOLD_CHILDREN:
            continue
        if item.name == "id" and household.id is None:
            continue
        row[_HOUSEHOLD_COLUMNS.get(item.name, item.name)] = serialise(getattr(household, item.name))
    return row


def household_from_row(row: Mapping[str, Any]) -> Household:
    return Household(
        id=_optional_str(row.get("id")),
        agency_id=str(row.get("agency_id") or ""),
        household_key=str(row.get("household_key") or ""),
        first_name=str(row.get("first_name") or ""),
        last_name=str(row.get("last_name") or ""),
        zip_code=str(row.get("zip_code") or ""),
        status=HouseholdStatus(row.get("status") or HouseholdStatus.LEAD.value),
        phones=list(row.get("phone") or []),
        email=row.get("email"),
        lead_source_id=_optional_str(row.get("lead_source_id")),
        team_member_id=_optional_str(row.get("team_member_id")),
        objection=row.get("objection"),
        needs_attention=bool(row.get("needs_attention")),
        products_interested=row.get("products_interested"),
        lead_received_date=_parse_date(row.get("lead_received_date")),
        first_quote_date=_parse_date(row.get("first_quote_date")),
        sold_date=_parse_date(row.get("sold_date")),
        quotes=[quote_from_row(item) for item in row.get("quotes") or []],
        sales=[sale_from_row(item) for item in row.get("sales") or []],
    )


def quote_to_row(quote: Quote) -> Dict[str, Any]:
    return serialise_dataclass(quote)


def quote_from_row(row: Mapping[str, Any]) -> Quote:
    return Quote(
        id=_optional_str(row.get("id")),
        household_id=str(row.get("household_id") or ""),
        agency_id=str(row.get("agency_id") or ""),
        product_type=str(row.get("product_type") or "Unknown"),
        premium_cents=int(row.get("premium_cents") or 0),
        quote_date=_parse_date(row.get("quote_date")),
        items_quoted=int(row.get("items_quoted") or 1),
        team_member_id=_optional_str(row.get("team_member_id")),
        source=str(row.get("source") or "manual"),
        issued_policy_number=row.get("issued_policy_number"),
    )


def sale_to_row(sale: Sale) -> Dict[str, Any]:
    return serialise_dataclass(sale)


def sale_from_row(row: Mapping[str, Any]) -> Sale:
    return Sale(
        id=_optional_str(row.get("id")),
        household_id=str(row.get("household_id") or ""),
        agency_id=str(row.get("agency_id") or ""),
        product_type=str(row.get("product_type") or "Unknown"),
        premium_cents=int(row.get("premium_cents") or 0),
        sale_date=_parse_date(row.get("sale_date")),
        policies_sold=int(row.get("policies_sold") or 1),
        items_sold=int(row.get("items_sold") or 1),
        team_member_id=_optional_str(row.get("team_member_id")),
        source=str(row.get("source") or "manual"),
        policy_number=row.get("policy_number"),
        linked_quote_id=_optional_str(row.get("linked_quote_id")),
    )


def team_member_from_row(row: Mapping[str, Any]) -> TeamMember:
    return TeamMember(
        id=str(row["id"]),
        name=str(row.get("name") or ""),
        agency_id=_optional_str(row.get("agency_id")),
        sub_producer_code=row.get("sub_producer_code"),
    )


def lead_source_from_row(row: Mapping[str, Any]) -> LeadSource:
    cost_type = row.get("cost_type")
    return LeadSource(
        id=str(row["id"]),
        name=str(row.get("name") or ""),
        agency_id=_optional_str(row.get("agency_id")),
        bucket_id=_optional_str(row.get("bucket_id")),
        cost_type=CostType(cost_type) if cost_type else None,
        is_self_generated=bool(row.get("is_self_generated")),
    )


def bucket_from_row(row: Mapping[str, Any]) -> MarketingBucket:
    return MarketingBucket(id=str(row["id"]), name=str(row.get("name") or ""), agency_id=_optional_str(row.get("agency_id")))


def spend_from_row(row: Mapping[str, Any]) -> LeadSourceSpend:
    return LeadSourceSpend(
        lead_source_id=str(row["lead_source_id"]),
        spend_cents=int(row.get("spend_cents") or 0),
        period_start=_parse_date(row.get("period_start")),
        period_end=_parse_date(row.get("period_end")),
    )


def serialise_dataclass(instance: Any) -> Dict[str, Any]:
    row: Dict[str, Any] = {}
    for item in fields(instance):
        value = getattr(instance, item.name)
        if item.name == "id" and value is None:
            continue
        row[item.name] = serialise(value)
    return row


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
