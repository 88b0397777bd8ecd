"""Heuristic column mapping from spreadsheet headers to target fields."""
from __future__ import annotations

import re
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from .models import MULTI_FIELDS, SINGLE_FIELDS, CandidateColumn, ColumnMapping

_FIELD_SYNONYMS: Mapping[str, Sequence[str]] = {
    "first_name": ("first name", "firstname", "customer first name", "insured first name", "fname"),
    "last_name": ("last name", "lastname", "customer last name", "insured last name", "lname", "surname"),
    "customer_name": ("customer name", "insured name", "full name", "name"),
    "zip_code": ("zip code", "zipcode", "zip", "postal code", "postal", "customer zip code"),
    "phones": ("phone", "phones", "telephone", "tel", "mobile", "cell", "cellphone", "phone number"),
    "email": ("email", "e mail", "email address"),
    "product_type": ("product", "product type", "products", "line", "policy type"),
    "premium": ("premium", "quoted premium", "written premium", "premium amount"),
    "date": (
        "date",
        "production date",
        "quote date",
        "sale date",
        "sold date",
        "issue date",
        "lead date",
        "received date",
        "effective date",
    ),
    "items": ("items", "item count", "items quoted", "items sold", "quoted item count"),
    "producer": ("sub producer", "producer", "agent", "producer code"),
    "policy_number": ("policy #", "policy number", "policy no", "issued policy #"),
    "products_interested": ("products interested", "interested in"),
}

_EXACT_SCORE = 1.0
_PREFIX_SCORE = 0.8
_SUBSTRING_SCORE = 0.6
# longer coverage of the header breaks ties inside a tier
_COVERAGE_WEIGHT = 0.19


def normalise_header(header: str) -> str:
    """Lower-case a header and collapse punctuation runs into single spaces."""

    return re.sub(r"[^a-z0-9#]+", " ", header.lower()).strip()


def score_header(header: str, synonyms: Iterable[str]) -> float:
    """Score how well ``header`` matches any synonym (0 means no match).

    Exact matches score 1.0, a synonym starting the header about 0.8 and a
    synonym found as whole words elsewhere about 0.6. Within a tier, the
    synonym covering more of the header wins, so "customer first name"
    prefers ``first_name`` over ``customer_name``.
    """

    normalised = normalise_header(header)
    if not normalised:
        return 0.0
    best = 0.0
    for synonym in synonyms:
        if normalised == synonym:
            return _EXACT_SCORE
        match = re.search(rf"(?<![a-z0-9]){re.escape(synonym)}(?![a-z0-9])", normalised)
        if match is None:
            continue
        tier = _PREFIX_SCORE if match.start() == 0 else _SUBSTRING_SCORE
        best = max(best, tier + _COVERAGE_WEIGHT * len(synonym) / len(normalised))
    return best


def score_candidates(headers: Sequence[str]) -> Dict[str, List[CandidateColumn]]:
    """Return every plausible source column per target field, best first."""

    candidates: Dict[str, List[CandidateColumn]] = {}
    for target, synonyms in _FIELD_SYNONYMS.items():
        scored = [CandidateColumn(header=header, score=score_header(header, synonyms)) for header in headers]
        matches = [candidate for candidate in scored if candidate.score > 0]
        if target in MULTI_FIELDS:
            # header order is kept so phone lists come out in file order
            candidates[target] = matches
        else:
            candidates[target] = sorted(matches, key=lambda candidate: -candidate.score)
    return candidates


def suggest_mapping(headers: Sequence[str]) -> ColumnMapping:
    """Best-effort mapping; advisory only, the operator can override every field.

    Single-value fields are assigned greedily by score so one header is never
    claimed by two fields. All phone candidates are kept.
    """

    candidates = score_candidates(headers)
    ranked: List[Tuple[float, int, str, str]] = []
    for priority, target in enumerate(SINGLE_FIELDS):
        for candidate in candidates.get(target, []):
            ranked.append((candidate.score, -priority, target, candidate.header))
    ranked.sort(reverse=True)

    mapping = ColumnMapping()
    claimed: set[str] = set()
    for _, _, target, header in ranked:
        if getattr(mapping, target) is not None or header in claimed:
            continue
        setattr(mapping, target, header)
        claimed.add(header)

    mapping.phones = [candidate.header for candidate in candidates["phones"] if candidate.header not in claimed]
    return mapping


def apply_overrides(mapping: ColumnMapping, overrides: Mapping[str, object]) -> ColumnMapping:
    """Apply operator overrides such as ``{"zip_code": "Postal", "phones": ["Cell"]}``."""

    for target, value in overrides.items():
        mapping.override(target, value)  # type: ignore[arg-type]
    return mapping


__all__ = ["apply_overrides", "normalise_header", "score_candidates", "score_header", "suggest_mapping"]
