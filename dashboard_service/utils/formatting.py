"""Rounding and percentage helpers shared by the aggregator and the normalizer.

Amounts are VND in the smallest unit (no decimals), e.g. 848000000.
"""
import math
from typing import Optional

MILLION = 1_000_000


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves toward +inf like the dashboard does: 2.5 -> 3, -2.5 -> -2."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def round_int(value: float) -> int:
    return int(round_half_up(value))


def to_millions(value: Optional[float]) -> int:
    """848_400_000 -> 848."""
    return round_int((value or 0) / MILLION)


def pct_change(current: float, previous: float) -> float:
    """Period-over-period change in percent; 0 when there is no baseline."""
    if previous > 0:
        return (current - previous) / previous * 100
    return 0.0


def trend_label(trend: float, suffix: str = "YoY") -> str:
    """12.345 -> '+12.3% YoY', -4 -> '-4.0% YoY'."""
    sign = "+" if trend >= 0 else ""
    return f"{sign}{trend:.1f}% {suffix}"
