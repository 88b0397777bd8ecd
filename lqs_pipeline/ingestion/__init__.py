"""Parsing, mapping, normalisation and export of agency spreadsheets."""

from .exporters import (
    HouseholdRow,
    build_household_rows,
    export_households,
    export_households_csv,
    paginate,
    sort_households,
    write_households_csv,
)
from .mapping import apply_overrides, score_candidates, suggest_mapping
from .models import (
    CandidateColumn,
    ColumnMapping,
    NormalizedRecord,
    NormalizeResult,
    ParseResult,
    PhoneComparison,
    ProducerRef,
)
from .normalizer import household_key, normalize_rows
from .parser import detect_format, parse_tabular

__all__ = [
    "CandidateColumn",
    "ColumnMapping",
    "HouseholdRow",
    "NormalizeResult",
    "NormalizedRecord",
    "ParseResult",
    "PhoneComparison",
    "ProducerRef",
    "apply_overrides",
    "build_household_rows",
    "detect_format",
    "export_households",
    "export_households_csv",
    "household_key",
    "normalize_rows",
    "paginate",
    "parse_tabular",
    "score_candidates",
    "sort_households",
    "suggest_mapping",
    "write_households_csv",
]
