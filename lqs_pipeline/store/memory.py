"""Thread-safe in-memory store used for tests, dry runs and JSON snapshots."""
from __future__ import annotations

import copy
import itertools
import json
import logging
import threading
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..errors import StoreError
from ..models import LeadSource, LeadSourceSpend, MarketingBucket, TeamMember
from . import records
from .base import Filter, Order, TableStore

LOGGER = logging.getLogger(__name__)

_ID_PREFIXES = {
    records.HOUSEHOLDS: "hh",
    records.QUOTES: "q",
    records.SALES: "s",
    records.TEAM_MEMBERS: "tm",
    records.LEAD_SOURCES: "ls",
    records.MARKETING_BUCKETS: "mb",
    records.LEAD_SOURCE_SPEND: "sp",
}


def _matches(row: Mapping[str, Any], filters: Sequence[Filter]) -> bool:
    for column, operator, expected in filters:
        actual = row.get(column)
        if operator == "eq" and actual != expected:
            return False
        if operator == "neq" and actual == expected:
            return False
        if operator == "is" and actual is not expected:
            return False
        if operator == "gte" and (actual is None or actual < expected):
            return False
        if operator == "lte" and (actual is None or actual > expected):
            return False
    return True


class InMemoryStore(TableStore):
    """Rows live in plain dictionaries guarded by a lock.

    Returned rows are copies, so callers never mutate stored state.
    """

    def __init__(self, tables: Optional[Mapping[str, Iterable[Mapping[str, Any]]]] = None) -> None:
        self._lock = threading.Lock()
        self._tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._counters = defaultdict(lambda: itertools.count(1))
        for table, rows in (tables or {}).items():
            for row in rows:
                self._insert(table, row)

    # ------------------------------------------------------------------
    def _select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        *,
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [copy.deepcopy(row) for row in self._tables.get(table, []) if _matches(row, filters)]
        if order is not None:
            column, descending = order
            present = [row for row in rows if row.get(column) is not None]
            missing = [row for row in rows if row.get(column) is None]
            present.sort(key=lambda row: row[column], reverse=descending)
            rows = present + missing
        if limit is not None:
            rows = rows[:limit]
        return rows

    def _insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        row = copy.deepcopy(dict(values))
        with self._lock:
            if table == records.HOUSEHOLDS:
                duplicate = any(
                    existing.get("agency_id") == row.get("agency_id")
                    and existing.get("household_key") == row.get("household_key")
                    for existing in self._tables[table]
                )
                if duplicate:
                    raise StoreError(
                        f"Household '{row.get('household_key')}' already exists for agency '{row.get('agency_id')}'"
                    )
            if not row.get("id"):
                # snapshots carry their own ids; skip past them
                taken = {existing.get("id") for existing in self._tables[table]}
                row_id = f"{_ID_PREFIXES.get(table, table)}-{next(self._counters[table])}"
                while row_id in taken:
                    row_id = f"{_ID_PREFIXES.get(table, table)}-{next(self._counters[table])}"
                row["id"] = row_id
            self._tables[table].append(row)
            return copy.deepcopy(row)

    def _update(self, table: str, row_id: str, values: Mapping[str, Any]) -> None:
        with self._lock:
            for row in self._tables.get(table, []):
                if row.get("id") == row_id:
                    row.update(copy.deepcopy(dict(values)))
                    return
        raise StoreError(f"No row '{row_id}' in table '{table}'")

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------
    def add_team_member(self, member: TeamMember) -> None:
        self._insert(records.TEAM_MEMBERS, records.serialise_dataclass(member))

    def add_lead_source(self, source: LeadSource) -> None:
        self._insert(records.LEAD_SOURCES, records.serialise_dataclass(source))

    def add_marketing_bucket(self, bucket: MarketingBucket) -> None:
        self._insert(records.MARKETING_BUCKETS, records.serialise_dataclass(bucket))

    def add_lead_source_spend(self, agency_id: str, spend: LeadSourceSpend) -> None:
        row = records.serialise_dataclass(spend)
        row["agency_id"] = agency_id
        self._insert(records.LEAD_SOURCE_SPEND, row)

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._tables.get(table, []))

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        with self._lock:
            return {table: copy.deepcopy(rows) for table, rows in self._tables.items()}

    @classmethod
    def load(cls, path: str | Path) -> "InMemoryStore":
        """Create a store from a JSON snapshot; a missing file gives an empty store."""

        file_path = Path(path)
        if not file_path.exists():
            LOGGER.info("Snapshot %s not found, starting with an empty store", file_path)
            return cls()
        return cls(json.loads(file_path.read_text(encoding="utf-8")))

    def save(self, path: str | Path) -> Path:
        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(json.dumps(self.snapshot(), indent=2, ensure_ascii=False), encoding="utf-8")
        return file_path


__all__ = ["InMemoryStore"]
