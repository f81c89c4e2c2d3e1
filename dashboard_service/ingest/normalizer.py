"""
Row normalizer for the daily sales sheets (Sales25*, Sales26*).

The sales tabs are semi-structured: month header rows, "KW" week-summary
rows and blank spacer rows sit between the daily rows, and some tabs carry
two empty leading columns so the date lands in column C instead of A.
Numeric columns are located relative to the date column through
SHEET_VARIANTS.
"""
import logging
import math
import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from dashboard_service.utils.formatting import round_int

logger = logging.getLogger(__name__)

PRIMARY_DATE_COLUMN = 0
FALLBACK_DATE_COLUMN = 2

_BARE_WORD = re.compile(r"^[A-Za-z]{3,}$")
_SHEET_DATE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4}|\d{2})$")
_WEEK_SUMMARY_PREFIX = "KW"


@dataclass(frozen=True)
class ColumnMap:
    """Offsets of each field, counted from the column that holds the date."""
    revenue: int
    pax: int
    avg_spend: int
    google_review_count: Optional[int] = None
    google_rating: Optional[int] = None

    @property
    def has_google_reviews(self) -> bool:
        return self.google_review_count is not None and self.google_rating is not None


# Sales26* puts the date in column C: revenue H(7), pax AC(28),
# reviews AD(29), stars AE(30), avg spend AF(31).
# Sales25* puts the date in column A: revenue H(7), pax AC(28),
# avg spend AD(29). It has no review columns.
SHEET_VARIANTS: Dict[str, ColumnMap] = {
    "sales25": ColumnMap(revenue=7, pax=28, avg_spend=29),
    "sales26": ColumnMap(revenue=5, pax=26, avg_spend=29, google_review_count=27, google_rating=28),
}
DEFAULT_VARIANT = "sales26"


class SkipReason(str, Enum):
    EMPTY = "empty row"
    WEEK_SUMMARY = "week summary row"
    HEADER = "header row"
    UNPARSEABLE_DATE = "unparseable date"
    NO_DATA = "no meaningful data"


@dataclass
class Skip:
    reason: SkipReason
    raw_date: str = ""


@dataclass
class NormalizedRow:
    """One daily-metrics candidate, ready to upsert by date."""
    date: str
    revenue: int
    pax: int
    avg_spend: int
    date_column: int
    raw_date: str
    google_rating: Optional[float] = None
    google_review_count: Optional[int] = None

    def to_upsert(self) -> Dict[str, Any]:
        """Columns to write. Review fields only when strictly positive."""
        data: Dict[str, Any] = {
            "date": date.fromisoformat(self.date),
            "revenue": self.revenue,
            "pax": self.pax,
            "avg_spend": self.avg_spend,
        }
        if self.google_rating and self.google_rating > 0:
            data["google_rating"] = self.google_rating
        if self.google_review_count and self.google_review_count > 0:
            data["google_review_count"] = self.google_review_count
        return data


def resolve_variant(sheet_name: Optional[str], variant: Optional[str] = None) -> str:
    """Pick the column layout: explicit variant wins, else '25' in the tab name means sales25."""
    if variant:
        key = variant.strip().lower()
        if key not in SHEET_VARIANTS:
            raise ValueError(
                f"Unknown sheet variant {variant!r}; expected one of {sorted(SHEET_VARIANTS)}"
            )
        return key
    if "25" in (sheet_name or ""):
        return "sales25"
    return DEFAULT_VARIANT


def parse_sheet_date(raw: Any) -> Optional[str]:
    """Parse 'DD.MM.YYYY' or 'DD.MM.YY' -> 'YYYY-MM-DD'. None for anything else.

    Two-digit years are interpreted as 20xx. Impossible dates (31.02.2026)
    are rejected rather than rolled over.
    """
    if raw is None:
        return None
    match = _SHEET_DATE.match(str(raw).strip())
    if not match:
        return None
    day, month, year = match.groups()
    full_year = int(year) + 2000 if len(year) == 2 else int(year)
    try:
        return date(full_year, int(month), int(day)).isoformat()
    except ValueError:
        return None


def parse_number(raw: Any) -> float:
    """Coerce a currency-like cell to float. '1,500,000 đ' -> 1500000.0.

    Everything but digits, '.' and a leading '-' is dropped. Several dots
    are read as thousands separators ('1.500.000'). Unparseable -> 0.0.
    """
    if raw is None:
        return 0.0
    if isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        return 0.0 if isinstance(raw, float) and math.isnan(raw) else float(raw)
    s = str(raw).strip()
    negative = s.startswith("-")
    cleaned = re.sub(r"[^0-9.]", "", s)
    if cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")
    if not cleaned:
        return 0.0
    try:
        value = float(cleaned)
    except ValueError:
        return 0.0
    if math.isnan(value):
        return 0.0
    return -value if negative else value


def parse_count(raw: Any) -> int:
    """Whole-number cell (pax, review counts); fractions are truncated."""
    return int(parse_number(raw))


def parse_rating(raw: Any) -> float:
    """Google stars cell, e.g. '4.6*' -> 4.6."""
    if raw is None:
        return 0.0
    return parse_number(str(raw).replace("*", ""))


def _cell(row: Sequence[Any], idx: Optional[int]) -> Any:
    if idx is None or idx < 0 or idx >= len(row):
        return None
    return row[idx]


def _cell_str(row: Sequence[Any], idx: int) -> str:
    val = _cell(row, idx)
    return "" if val is None else str(val).strip()


def locate_date(row: Sequence[Any]) -> Tuple[str, int]:
    """Return (date_string, column_index), preferring column A over column C."""
    date_str = _cell_str(row, PRIMARY_DATE_COLUMN)
    if not date_str or _BARE_WORD.match(date_str):
        return _cell_str(row, FALLBACK_DATE_COLUMN), FALLBACK_DATE_COLUMN
    return date_str, PRIMARY_DATE_COLUMN


def normalize_row(row: Sequence[Any], variant: str = DEFAULT_VARIANT) -> Union[NormalizedRow, Skip]:
    """Turn one raw sheet row into a NormalizedRow or a Skip with its reason."""
    columns = SHEET_VARIANTS[variant]
    date_str, date_col = locate_date(row)

    if not date_str:
        return Skip(SkipReason.EMPTY)
    if date_str.upper().startswith(_WEEK_SUMMARY_PREFIX):
        return Skip(SkipReason.WEEK_SUMMARY, date_str)
    if _BARE_WORD.match(date_str):
        return Skip(SkipReason.HEADER, date_str)

    iso_date = parse_sheet_date(date_str)
    if iso_date is None:
        return Skip(SkipReason.UNPARSEABLE_DATE, date_str)

    revenue = parse_number(_cell(row, date_col + columns.revenue))
    pax = parse_count(_cell(row, date_col + columns.pax))
    if revenue == 0 and pax == 0:
        return Skip(SkipReason.NO_DATA, date_str)

    avg_spend = parse_number(_cell(row, date_col + columns.avg_spend))

    rating = None
    review_count = None
    if columns.has_google_reviews:
        rating = parse_rating(_cell(row, date_col + columns.google_rating)) or None
        review_count = parse_count(_cell(row, date_col + columns.google_review_count)) or None

    return NormalizedRow(
        date=iso_date,
        revenue=round_int(revenue),
        pax=pax,
        avg_spend=round_int(avg_spend),
        date_column=date_col,
        raw_date=date_str,
        google_rating=rating if rating and rating > 0 else None,
        google_review_count=review_count if review_count and review_count > 0 else None,
    )
