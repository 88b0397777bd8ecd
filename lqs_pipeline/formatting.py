"""Display helpers for money and ratios."""
from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal
from typing import Optional


def format_cents(cents: Optional[int]) -> str:
    """``123456`` -> ``"$1,234.56"``; negative amounts keep their sign in front."""

    if cents is None:
        return "$0.00"
    sign = "-" if cents < 0 else ""
    dollars = Decimal(abs(int(cents))) / 100
    return f"{sign}${dollars:,.2f}"


def cents_to_dollars(cents: Optional[int]) -> Decimal:
    return (Decimal(int(cents or 0)) / 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN)


def format_percent(ratio: Optional[float], digits: int = 1) -> str:
    """``0.256`` -> ``"25.6%"``; ``None`` (undefined ratio) -> ``"-"``."""

    if ratio is None:
        return "-"
    return f"{ratio * 100:.{digits}f}%"


def format_ratio(value: Optional[float], digits: int = 2) -> str:
    if value is None:
        return "-"
    return f"{value:.{digits}f}"


__all__ = ["cents_to_dollars", "format_cents", "format_percent", "format_ratio"]
