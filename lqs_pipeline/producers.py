"""Match sub-producer values from agency reports to team members."""
from __future__ import annotations

import re
import unicodedata
from typing import Dict, Iterable, List, Optional

from .ingestion.models import ProducerRef
from .models import TeamMember


def name_parts(name: str) -> List[str]:
    """Upper-case ASCII name tokens with punctuation removed."""

    ascii_name = unicodedata.normalize("NFD", name).encode("ascii", "ignore").decode("ascii")
    return [part for part in re.sub(r"[^A-Z\s]", "", ascii_name.upper()).split() if part]


class TeamMemberMatcher:
    """Resolves producers by sub-producer code first, then by fuzzy name."""

    def __init__(self, team_members: Iterable[TeamMember]) -> None:
        self._members = list(team_members)
        self._by_code: Dict[str, TeamMember] = {
            member.sub_producer_code.strip().lower(): member
            for member in self._members
            if member.sub_producer_code and member.sub_producer_code.strip()
        }

    def match(self, producer: ProducerRef) -> Optional[TeamMember]:
        if producer.code:
            member = self._by_code.get(producer.code.strip().lower())
            if member is not None:
                return member
        if producer.name:
            return self.match_name(producer.name)
        return None

    def match_name(self, name: str) -> Optional[TeamMember]:
        """Best fuzzy match: at least two name parts and half of them must agree."""

        parts = name_parts(name)
        if not parts:
            return None

        best: Optional[TeamMember] = None
        best_score = 0.0
        for member in self._members:
            member_parts = name_parts(member.name)
            if not member_parts:
                continue
            matched = sum(
                1
                for part in parts
                if any(part in member_part or member_part in part for member_part in member_parts)
            )
            score = matched / len(parts)
            if score >= 0.5 and matched >= 2 and score > best_score:
                best, best_score = member, score
        return best


__all__ = ["TeamMemberMatcher", "name_parts"]
