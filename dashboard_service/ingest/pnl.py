"""
P&L sheet ingestion.

P&L tabs are laid out as category rows: the label sits in column A or B
and each column from C onward is one month. A header row near the top
names the months ("Jan 2025", "Feb-25", "03/2025", ...), optionally tagged
Actual/Budget. Labels are matched against CATEGORY_VOCABULARY; anything
else (sub-totals, notes, blank rows) is ignored.

Only the categories found in a run are written, so a tab that carries
revenue lines alone never blanks out previously-synced cost lines.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dashboard_service.config import DEFAULT_PNL_RANGE
from dashboard_service.errors import ConfigurationError, UpstreamFetchError
from dashboard_service.ingest.normalizer import parse_number
from dashboard_service.ingest.sync_log import (
    SyncStatus,
    SyncType,
    finish_sync,
    start_sync,
    terminal_status,
)

logger = logging.getLogger(__name__)

LABEL_COLUMNS = (0, 1)
MONTH_START_COLUMN = 2
HEADER_SCAN_ROWS = 15
MAX_ERROR_SAMPLES = 5
MAX_UNMATCHED_LABELS = 10
MAX_SAMPLE_VALUES = 5

ACTUAL = "actual"
BUDGET = "budget"

CATEGORY_VOCABULARY: Dict[str, Tuple[str, ...]] = {
    "gross_sales": ("gross sales", "gross revenue", "total gross sales", "total sales"),
    "net_sales": ("net sales", "net revenue", "total net sales", "total revenue"),
    "revenue_food": ("food", "food revenue", "food sales", "revenue food"),
    "revenue_beer": ("beer", "beer revenue", "beer sales", "revenue beer"),
    "revenue_wine": ("wine", "wine revenue", "wine sales", "revenue wine"),
    "revenue_spirits": ("spirits", "spirit", "spirits revenue", "spirits sales", "revenue spirits"),
    "revenue_cocktails": ("cocktails", "cocktail", "cocktails revenue", "cocktail sales", "revenue cocktails"),
    "revenue_shisha": ("shisha", "shisha revenue", "shisha sales", "revenue shisha"),
    "revenue_balloons": ("balloons", "balloon", "balloons revenue", "balloon sales", "revenue balloons"),
    "revenue_other": ("other", "others", "other revenue", "other sales", "revenue other"),
    "cogs": ("cogs", "cost of goods sold", "cost of sales", "total cogs"),
    "labor_cost": (
        "labor", "labour", "labor cost", "labour cost", "labor costs", "labour costs",
        "staff cost", "staff costs", "payroll", "total labor", "total labour",
    ),
    "fixed_costs": ("fixed costs", "fixed cost", "total fixed costs", "total fixed cost"),
    "opex": ("opex", "operating expenses", "operating costs", "operating expense"),
    "total_expenses": ("total expenses", "total costs", "total cost", "total expense"),
    "ebit": ("ebit", "operating profit", "operating income", "net income"),
}

SECTIONS: Dict[str, Tuple[str, ...]] = {
    "revenue": (
        "gross_sales", "net_sales", "revenue_food", "revenue_beer", "revenue_wine",
        "revenue_spirits", "revenue_cocktails", "revenue_shisha", "revenue_balloons",
        "revenue_other",
    ),
    "costs": ("cogs", "labor_cost", "fixed_costs", "opex", "total_expenses"),
    "results": ("ebit",),
}

_LABEL_INDEX: Dict[str, str] = {
    alias: fld for fld, aliases in CATEGORY_VOCABULARY.items() for alias in aliases
}

_MONTH_NAMES = {
    "jan": 1, "january": 1, "feb": 2, "february": 2, "mar": 3, "march": 3,
    "apr": 4, "april": 4, "may": 5, "jun": 6, "june": 6, "jul": 7, "july": 7,
    "aug": 8, "august": 8, "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10, "nov": 11, "november": 11, "dec": 12, "december": 12,
}
_MONTH_WORD = re.compile(r"\b(" + "|".join(sorted(_MONTH_NAMES, key=len, reverse=True)) + r")\b")
_YEAR_4 = re.compile(r"\b(20\d{2})\b")
_YEAR_2 = re.compile(r"['\-/.\s](\d{2})\b")
_MONTH_SLASH_YEAR = re.compile(r"\b(\d{1,2})[/.\-](20\d{2})\b")
_YEAR_DASH_MONTH = re.compile(r"\b(20\d{2})[/.\-](\d{1,2})\b")
_SHORT_MONTH = re.compile(r"^(?:t|tháng ?)(1[0-2]|[1-9])\b")
_BUDGET_TAG = re.compile(r"\b(budget|bud|bgt|plan)\b")
_ACTUAL_TAG = re.compile(r"\b(actual|actuals|act)\b")


@dataclass
class MonthColumn:
    index: int
    year: int
    month: int
    data_type: str
    header: str

    @property
    def key(self) -> Tuple[int, int, str]:
        return (self.year, self.month, self.data_type)

    @property
    def label(self) -> str:
        return f"{self.year}-{self.month:02d} ({self.data_type})"


@dataclass
class PnlIngestResult:
    processed: int = 0
    month_columns: List[str] = field(default_factory=list)
    debug: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.processed > 0

    @property
    def error_code(self) -> Optional[str]:
        if self.success:
            return None
        if self.month_columns:
            return "no_matching_categories"
        return "no_month_columns"

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": self.success,
            "processed": self.processed,
            "monthColumns": self.month_columns,
            "debug": self.debug,
        }
        if self.errors:
            body["errors"] = self.errors
        code = self.error_code
        if code == "no_matching_categories":
            body["errorCode"] = code
            body["error"] = (
                f"Found {len(self.month_columns)} month columns but no row label "
                "matched a known P&L category"
            )
            body["hint"] = (
                "Rename the category labels in column A or B to one of the known "
                "categories (e.g. 'Net Sales', 'COGS', 'Labor Cost', 'EBIT')."
            )
        elif code == "no_month_columns":
            body["errorCode"] = code
            body["error"] = f"No month header row found in the first {HEADER_SCAN_ROWS} rows"
            body["hint"] = (
                "Check the sheet name and that month headers such as 'Jan 2025' "
                "start in column C."
            )
        return body


def normalize_label(raw: Any) -> str:
    """'  Labor  Cost: ' -> 'labor cost'."""
    if raw is None:
        return ""
    s = re.sub(r"\s+", " ", str(raw)).strip().lower()
    return s.rstrip(":").strip()


def match_category(raw: Any) -> Optional[str]:
    return _LABEL_INDEX.get(normalize_label(raw))


def infer_sheet_data_type(sheet_name: Optional[str]) -> str:
    return BUDGET if sheet_name and "budget" in sheet_name.lower() else ACTUAL


def parse_month_header(
    raw: Any, default_year: int, default_type: str = ACTUAL
) -> Optional[Tuple[int, int, str]]:
    """Parse a month header cell into (year, month, data_type).

    Accepts 'Jan', 'January 2025', 'Jan-25', "Jan '25", '01/2025', '2025-01',
    Vietnamese 'T1' / 'Tháng 1 2025', optionally tagged 'Actual' / 'Budget'.
    Returns None for anything else.
    """
    if raw is None:
        return None
    text = re.sub(r"\s+", " ", str(raw)).strip().lower()
    if not text:
        return None

    year: Optional[int] = None
    month: Optional[int] = None

    m = _YEAR_DASH_MONTH.search(text)
    if m:
        year, month = int(m.group(1)), int(m.group(2))
    else:
        m = _MONTH_SLASH_YEAR.search(text)
        if m:
            month, year = int(m.group(1)), int(m.group(2))
        elif _SHORT_MONTH.match(text):
            month = int(_SHORT_MONTH.match(text).group(1))
            y4 = _YEAR_4.search(text)
            if y4:
                year = int(y4.group(1))
        else:
            m = _MONTH_WORD.search(text)
            if m:
                month = _MONTH_NAMES[m.group(1)]
                rest = text[m.end():]
                y4 = _YEAR_4.search(text)
                y2 = _YEAR_2.search(rest)
                if y4:
                    year = int(y4.group(1))
                elif y2:
                    year = 2000 + int(y2.group(1))

    if month is None or not 1 <= month <= 12:
        return None

    if _BUDGET_TAG.search(text):
        data_type = BUDGET
    elif _ACTUAL_TAG.search(text):
        data_type = ACTUAL
    else:
        data_type = default_type
    return (year or default_year, month, data_type)


def detect_month_columns(
    rows: Sequence[Sequence[Any]],
    default_year: int,
    default_type: str,
    year_override: Optional[int] = None,
) -> Tuple[Optional[int], List[MonthColumn]]:
    """Find the header row and its month columns. Returns (header_row_index, columns)."""
    for row_idx, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        columns: List[MonthColumn] = []
        for col_idx in range(MONTH_START_COLUMN, len(row)):
            parsed = parse_month_header(row[col_idx], default_year, default_type)
            if parsed is None:
                continue
            year, month, data_type = parsed
            if year_override is not None:
                year = year_override
            columns.append(MonthColumn(col_idx, year, month, data_type, str(row[col_idx]).strip()))
        if columns:
            return row_idx, columns
    return None, []


def parse_amount(raw: Any) -> Optional[float]:
    """P&L cell -> float. Blank -> None (left untouched), '-' -> 0, '(1,200)' -> -1200."""
    if raw is None:
        return None
    s = str(raw).strip()
    if not s:
        return None
    if s in ("-", "–"):
        return 0.0
    negative = s.startswith("(") and s.endswith(")")
    value = parse_number(s.strip("()"))
    return -value if negative else value


def extract_records(
    rows: Sequence[Sequence[Any]],
    header_row: int,
    columns: List[MonthColumn],
    debug: Dict[str, Any],
) -> Dict[Tuple[int, int, str], Dict[str, float]]:
    """Collect matched category values per (year, month, data_type)."""
    records: Dict[Tuple[int, int, str], Dict[str, float]] = {}
    matched: List[str] = []
    unmatched: List[str] = []
    duplicates: List[str] = []

    for row in rows[header_row + 1:]:
        fld = None
        label = ""
        for col in LABEL_COLUMNS:
            if col < len(row) and normalize_label(row[col]):
                label = str(row[col]).strip()
                fld = match_category(row[col])
                if fld:
                    break
        if not label:
            continue
        if fld is None:
            if len(unmatched) < MAX_UNMATCHED_LABELS and label not in unmatched:
                unmatched.append(label)
            continue
        if fld in matched:
            duplicates.append(label)
            continue
        matched.append(fld)

        for column in columns:
            if column.index >= len(row):
                continue
            value = parse_amount(row[column.index])
            if value is None:
                continue
            records.setdefault(column.key, {})[fld] = value

    debug["matchedCategories"] = matched
    debug["unmatchedLabels"] = unmatched
    if duplicates:
        debug["duplicateLabels"] = duplicates
    return records


def summarize_sections(
    values: Dict[str, float], existing: Optional[Dict[str, Any]], summary: Dict[str, Dict[str, int]]
) -> None:
    """Accumulate per-section write/change counts for one record."""
    for section, fields in SECTIONS.items():
        bucket = summary.setdefault(section, {"written": 0, "changed": 0})
        for fld in fields:
            if fld not in values:
                continue
            bucket["written"] += 1
            old = existing.get(fld) if existing else None
            if old is None or float(old) != float(values[fld]):
                bucket["changed"] += 1


async def ingest_pnl(
    store,
    sheets,
    sheet_id: Optional[str],
    sheet_name: Optional[str],
    csv_url: Optional[str] = None,
    year_override: Optional[int] = None,
    today: Optional[date] = None,
) -> PnlIngestResult:
    """Pull one P&L tab into pnl_monthly.

    Raises:
        ConfigurationError: missing sheet id / name or API key.
        UpstreamFetchError: the sheet or CSV export could not be read.
    """
    if not sheet_id:
        raise ConfigurationError("sheetId is required")
    if not csv_url:
        if not sheet_name:
            raise ConfigurationError("sheetName is required")
        if not sheets.is_configured:
            raise ConfigurationError("GOOGLE_API_KEY not configured. Set it in the service environment.")

    today = today or date.today()
    log_id = await start_sync(store, SyncType.PNL)
    try:
        return await _run_pnl_sync(store, sheets, sheet_id, sheet_name, csv_url, year_override, today, log_id)
    except (ConfigurationError, UpstreamFetchError) as exc:
        logger.error("[sync] P&L fetch failed: %s", exc)
        await finish_sync(store, log_id, SyncStatus.FAILED, error_message=str(exc))
        raise
    except Exception as exc:
        logger.error("[sync] P&L sync aborted: %s", exc, exc_info=True)
        await finish_sync(store, log_id, SyncStatus.FAILED, error_message=str(exc))
        raise


async def _run_pnl_sync(
    store, sheets, sheet_id, sheet_name, csv_url, year_override, today, log_id
) -> PnlIngestResult:
    if csv_url:
        rows = await sheets.fetch_csv_rows(csv_url)
    else:
        rows = await sheets.fetch_values(sheet_id, f"{sheet_name}!{DEFAULT_PNL_RANGE}")

    result = PnlIngestResult()
    result.debug = {
        "sheetName": sheet_name,
        "yearOverride": year_override,
        "source": "csv" if csv_url else "api",
        "totalRows": len(rows),
    }

    header_row, columns = detect_month_columns(
        rows, today.year, infer_sheet_data_type(sheet_name), year_override
    )
    result.month_columns = [c.label for c in columns]
    result.debug["headerRow"] = header_row

    if header_row is None:
        logger.warning("[sync] P&L %s: no month header row found", sheet_name)
        await finish_sync(store, log_id, SyncStatus.FAILED, error_message="no month columns", details=result.debug)
        return result

    records = extract_records(rows, header_row, columns, result.debug)
    result.debug["sampleValues"] = [
        {"period": f"{y}-{m:02d}", "dataType": t, "values": v}
        for (y, m, t), v in list(records.items())[:MAX_SAMPLE_VALUES]
    ]

    existing: Dict[Tuple[int, int, str], Dict[str, Any]] = {}
    if records:
        try:
            existing = await store.fetch_pnl_records(list(records))
        except Exception:
            logger.warning("[sync] Could not load stored P&L records for change summary", exc_info=True)

    sections: Dict[str, Dict[str, int]] = {}
    error_count = 0
    for (year, month, data_type), values in records.items():
        try:
            await store.upsert_pnl_record(year, month, data_type, values)
        except Exception as exc:
            logger.warning("[sync] P&L upsert failed for %d-%02d %s", year, month, data_type, exc_info=True)
            error_count += 1
            if len(result.errors) < MAX_ERROR_SAMPLES:
                result.errors.append(f"Upsert error for {year}-{month:02d} {data_type}: {exc}")
            continue
        summarize_sections(values, existing.get((year, month, data_type)), sections)
        result.processed += 1
    result.debug["sections"] = sections

    if result.processed == 0:
        logger.warning(
            "[sync] P&L %s: %d month columns, no categories matched", sheet_name, len(columns)
        )

    await finish_sync(
        store,
        log_id,
        terminal_status(result.processed, error_count),
        records_processed=result.processed,
        error_message="; ".join(result.errors) or result.to_response().get("error"),
        details=result.debug,
    )
    return result
