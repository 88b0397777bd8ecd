"""Merge normalised records into households, quotes and sales."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .ingestion.models import NormalizedRecord, PhoneComparison
from .models import Household, ImportKind, Quote, Sale, TeamMember, UploadResult
from .producers import TeamMemberMatcher
from .rate_limit import RateLimiter
from .store.base import DataStore

LOGGER = logging.getLogger(__name__)

UPLOAD_SOURCE = "upload"


@dataclass
class ReconcileOutcome:
    """What one record did to the store."""

    household: Household
    created: bool
    team_member: Optional[TeamMember] = None
    quote_created: bool = False
    quote_updated: bool = False
    sale_created: bool = False
    sale_updated: bool = False
    quote_linked: bool = False
    warnings: List[str] = field(default_factory=list)


def merge_phones(
    new_phones: Iterable[str],
    existing: Iterable[str],
    comparison: PhoneComparison = PhoneComparison.EXACT,
) -> List[str]:
    """New non-empty phones first, then existing ones not already present."""

    merged: List[str] = []
    seen: set[str] = set()
    for phone in list(new_phones) + list(existing):
        text = (phone or "").strip()
        key = comparison.key(text)
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(text)
    return merged


class HouseholdReconciler:
    """Creates or updates one household per record and attaches the quote or sale.

    Parameters
    ----------
    store:
        Backend used for every lookup and write.
    agency_id:
        Tenant the records belong to.
    kind:
        Which report the records came from; decides the household status and
        whether a quote or a sale is written.
    lead_source_id:
        Lead source assigned to every household touched by this run. Without
        one, new households are flagged as needing attention.
    team_members:
        Producers used to attribute quotes and sales.
    rate_limiter:
        Optional limiter acquired before each record is written.
    """

    def __init__(
        self,
        store: DataStore,
        agency_id: str,
        kind: ImportKind,
        *,
        lead_source_id: Optional[str] = None,
        team_members: Iterable[TeamMember] = (),
        phone_comparison: PhoneComparison = PhoneComparison.EXACT,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.store = store
        self.agency_id = agency_id
        self.kind = kind
        self.lead_source_id = lead_source_id or None
        self.matcher = TeamMemberMatcher(team_members)
        self.phone_comparison = phone_comparison
        self.rate_limiter = rate_limiter or RateLimiter(None)

    # ------------------------------------------------------------------
    def reconcile_all(self, records: Iterable[NormalizedRecord], result: UploadResult) -> UploadResult:
        """Reconcile ``records`` one by one, recording failures instead of raising."""

        for record in records:
            result.records_processed += 1
            self.rate_limiter.acquire()
            try:
                outcome = self.reconcile(record)
            except Exception as exc:
                LOGGER.exception("Row %s (%s) failed to save", record.row_number, record.household_key)
                result.add_error(record.row_number, f"Failed to save household: {exc}")
                continue
            self._tally(outcome, record, result)
        return result

    def _tally(self, outcome: ReconcileOutcome, record: NormalizedRecord, result: UploadResult) -> None:
        if outcome.created:
            result.households_created += 1
            if outcome.household.id:
                result.created_household_ids.append(outcome.household.id)
        else:
            result.households_updated += 1
        result.quotes_created += int(outcome.quote_created)
        result.quotes_updated += int(outcome.quote_updated)
        result.sales_created += int(outcome.sale_created)
        result.sales_updated += int(outcome.sale_updated)
        result.quotes_linked += int(outcome.quote_linked)
        if outcome.household.needs_attention:
            result.flagged_household_keys.add(outcome.household.household_key)
        if outcome.team_member is not None:
            result.team_members_matched += 1
        elif record.producer.raw:
            result.add_unmatched_producer(record.producer.raw)
        result.warnings.extend(outcome.warnings)

    # ------------------------------------------------------------------
    def reconcile(self, record: NormalizedRecord) -> ReconcileOutcome:
        team_member = self.matcher.match(record.producer) if record.producer.raw else None
        existing = self.store.find_household(self.agency_id, record.household_key)
        if existing is None:
            household = self._create_household(record, team_member)
            outcome = ReconcileOutcome(household=household, created=True, team_member=team_member)
        else:
            outcome = ReconcileOutcome(household=existing, created=False, team_member=team_member)
            self._merge_household(existing, record, team_member, outcome)

        if self.kind is ImportKind.QUOTE:
            self._upsert_quote(outcome.household, record, team_member, outcome)
        elif self.kind is ImportKind.SALE:
            self._upsert_sale(outcome.household, record, team_member, outcome)
        return outcome

    def _create_household(self, record: NormalizedRecord, team_member: Optional[TeamMember]) -> Household:
        household = Household(
            agency_id=self.agency_id,
            household_key=record.household_key,
            first_name=record.first_name,
            last_name=record.last_name,
            zip_code=record.zip_code,
            status=self.kind.initial_status,
            phones=merge_phones(record.phones, (), self.phone_comparison),
            email=record.email,
            lead_source_id=self.lead_source_id,
            team_member_id=team_member.id if team_member else None,
            needs_attention=self.lead_source_id is None,
            products_interested=record.products_interested,
        )
        if self.kind is ImportKind.LEAD:
            household.lead_received_date = record.record_date
        elif self.kind is ImportKind.QUOTE:
            household.first_quote_date = record.record_date
        else:
            household.sold_date = record.record_date
        created = self.store.insert_household(household)
        LOGGER.debug("Created household %s (%s)", created.id, created.household_key)
        return created

    def _merge_household(
        self,
        household: Household,
        record: NormalizedRecord,
        team_member: Optional[TeamMember],
        outcome: ReconcileOutcome,
    ) -> None:
        changes: Dict[str, Any] = {}

        def change(name: str, value: Any) -> None:
            if getattr(household, name) != value:
                changes[name] = value
                setattr(household, name, value)

        status = household.status.escalate(self.kind.initial_status)
        change("status", status)

        for name in ("first_name", "last_name", "zip_code"):
            if not getattr(household, name) and getattr(record, name):
                change(name, getattr(record, name))

        change("phones", merge_phones(record.phones, household.phones, self.phone_comparison))
        if record.email:
            change("email", record.email)
        if record.products_interested:
            change("products_interested", record.products_interested)
        if team_member is not None:
            change("team_member_id", team_member.id)

        if self.lead_source_id:
            previous = household.lead_source_id
            if previous and previous != self.lead_source_id:
                message = (
                    f"Row {record.row_number}: lead source for {household.household_key} "
                    f"changed from {previous} to {self.lead_source_id}"
                )
                LOGGER.warning(message)
                outcome.warnings.append(message)
            change("lead_source_id", self.lead_source_id)
            change("needs_attention", False)

        record_date = record.record_date
        if record_date is not None:
            if self.kind is ImportKind.LEAD and household.lead_received_date is None:
                change("lead_received_date", record_date)
            elif self.kind is ImportKind.QUOTE and (
                household.first_quote_date is None or record_date < household.first_quote_date
            ):
                change("first_quote_date", record_date)
            elif self.kind is ImportKind.SALE and household.sold_date is None:
                change("sold_date", record_date)

        if changes:
            self.store.update_household(household.id or "", changes)
            LOGGER.debug("Updated household %s: %s", household.id, sorted(changes))

    def _upsert_quote(
        self,
        household: Household,
        record: NormalizedRecord,
        team_member: Optional[TeamMember],
        outcome: ReconcileOutcome,
    ) -> None:
        product_type = record.product_type or "Unknown"
        existing = self.store.find_quote(household.id or "", record.record_date, product_type)
        if existing is not None and existing.id:
            changes: Dict[str, Any] = {"premium_cents": record.premium_cents or 0, "items_quoted": record.items}
            if team_member is not None:
                changes["team_member_id"] = team_member.id
            self.store.update_quote(existing.id, changes)
            outcome.quote_updated = True
            return

        self.store.insert_quote(
            Quote(
                household_id=household.id or "",
                agency_id=self.agency_id,
                product_type=product_type,
                premium_cents=record.premium_cents or 0,
                quote_date=record.record_date,
                items_quoted=record.items,
                team_member_id=team_member.id if team_member else None,
                source=UPLOAD_SOURCE,
            )
        )
        outcome.quote_created = True

    def _upsert_sale(
        self,
        household: Household,
        record: NormalizedRecord,
        team_member: Optional[TeamMember],
        outcome: ReconcileOutcome,
    ) -> None:
        product_type = record.product_type or "Unknown"
        linked = self.store.latest_quote(household.id or "", product_type)
        linked_id = linked.id if linked is not None else None

        if record.policy_number:
            existing = self.store.find_sale_by_policy(self.agency_id, record.policy_number)
        else:
            existing = self.store.find_sale(household.id or "", record.record_date, product_type)

        if existing is not None and existing.id:
            changes: Dict[str, Any] = {
                "household_id": household.id,
                "product_type": product_type,
                "premium_cents": record.premium_cents or 0,
                "items_sold": record.items,
            }
            if record.record_date is not None:
                changes["sale_date"] = record.record_date
            if team_member is not None:
                changes["team_member_id"] = team_member.id
            if linked_id and not existing.linked_quote_id:
                changes["linked_quote_id"] = linked_id
            self.store.update_sale(existing.id, changes)
            outcome.sale_updated = True
        else:
            self.store.insert_sale(
                Sale(
                    household_id=household.id or "",
                    agency_id=self.agency_id,
                    product_type=product_type,
                    premium_cents=record.premium_cents or 0,
                    sale_date=record.record_date,
                    items_sold=record.items,
                    team_member_id=team_member.id if team_member else None,
                    source=UPLOAD_SOURCE,
                    policy_number=record.policy_number,
                    linked_quote_id=linked_id,
                )
            )
            outcome.sale_created = True

        if linked is not None and linked.id:
            outcome.quote_linked = True
            if record.policy_number and linked.issued_policy_number != record.policy_number:
                self.store.update_quote(linked.id, {"issued_policy_number": record.policy_number})


__all__ = ["HouseholdReconciler", "ReconcileOutcome", "merge_phones"]
