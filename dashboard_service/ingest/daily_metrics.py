"""
Daily metrics ingestion from the sales sheet.

Fetches the declared range, runs every row through the normalizer and
upserts the survivors into daily_metrics keyed by date. Row-level problems
are counted and sampled; only configuration and transport failures abort
the run.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dashboard_service.config import DEFAULT_SHEET_NAME, DEFAULT_SHEET_RANGE
from dashboard_service.errors import ConfigurationError, UpstreamFetchError
from dashboard_service.ingest.normalizer import (
    NormalizedRow,
    Skip,
    SkipReason,
    normalize_row,
    resolve_variant,
)
from dashboard_service.ingest.sync_log import (
    SyncStatus,
    SyncType,
    finish_sync,
    start_sync,
    terminal_status,
)
from dashboard_service.utils.timing import StageTimer

logger = logging.getLogger(__name__)

MAX_ERROR_SAMPLES = 5
MAX_PROCESSED_DATE_SAMPLES = 5
SAMPLE_ROW_CELLS = 10


@dataclass
class IngestResult:
    processed: int = 0
    skipped: int = 0
    total_rows: int = 0
    errors: List[str] = field(default_factory=list)
    error_count: int = 0
    skip_reasons: Dict[str, int] = field(default_factory=dict)
    sample_row: Optional[List[Any]] = None
    processed_dates: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.processed > 0

    def add_error(self, message: str) -> None:
        self.error_count += 1
        if len(self.errors) < MAX_ERROR_SAMPLES:
            self.errors.append(message)

    def add_skip(self, skip: Skip) -> None:
        self.skipped += 1
        key = skip.reason.value
        self.skip_reasons[key] = self.skip_reasons.get(key, 0) + 1

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": self.success,
            "processed": self.processed,
            "skipped": self.skipped,
            "totalRows": self.total_rows,
            "sampleRow": self.sample_row,
            "processedDates": self.processed_dates,
        }
        if self.errors:
            body["errors"] = self.errors
        if not self.success:
            body["error"] = "No rows with revenue or pax data were found in the sheet range"
        return body


def sheet_range(sheet_name: Optional[str]) -> str:
    return f"{sheet_name or DEFAULT_SHEET_NAME}!{DEFAULT_SHEET_RANGE}"


def collect_candidates(rows: List[List[Any]], variant: str, result: IngestResult) -> Dict[str, NormalizedRow]:
    """Normalize every row; later rows for the same date replace earlier ones."""
    by_date: Dict[str, NormalizedRow] = {}
    for row in rows:
        parsed = normalize_row(row, variant)
        if isinstance(parsed, Skip):
            result.add_skip(parsed)
            if parsed.reason is SkipReason.UNPARSEABLE_DATE:
                result.add_error(f'Cannot parse date: "{parsed.raw_date}"')
            continue
        if parsed.date in by_date:
            logger.debug("Row for %s overrides an earlier row in this run", parsed.date)
        by_date[parsed.date] = parsed
    return by_date


async def ingest_daily_metrics(
    store,
    sheets,
    sheet_id: Optional[str],
    sheet_name: Optional[str] = None,
    variant: Optional[str] = None,
) -> IngestResult:
    """Pull one sales tab into daily_metrics.

    Args:
        store: MetricsStore (or anything with the same upsert/sync-log methods).
        sheets: SheetsClient.
        sheet_id: Spreadsheet id.
        sheet_name: Tab name; defaults to Sales26*.
        variant: Column layout override; inferred from the tab name when omitted.

    Raises:
        ConfigurationError: missing sheet id, API key or unknown variant.
        UpstreamFetchError: the sheet could not be read.
    """
    if not sheet_id:
        raise ConfigurationError("sheetId is required")
    if not sheets.is_configured:
        raise ConfigurationError("GOOGLE_API_KEY not configured. Set it in the service environment.")
    try:
        layout = resolve_variant(sheet_name, variant)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    log_id = await start_sync(store, SyncType.DAILY_METRICS)
    try:
        return await _run_daily_sync(store, sheets, sheet_id, sheet_name, layout, log_id)
    except (ConfigurationError, UpstreamFetchError) as exc:
        logger.error("[sync] Daily metrics fetch failed: %s", exc)
        await finish_sync(store, log_id, SyncStatus.FAILED, error_message=str(exc))
        raise
    except Exception as exc:
        logger.error("[sync] Daily metrics sync aborted: %s", exc, exc_info=True)
        await finish_sync(store, log_id, SyncStatus.FAILED, error_message=str(exc))
        raise


async def _run_daily_sync(store, sheets, sheet_id, sheet_name, layout, log_id) -> IngestResult:
    timer = StageTimer("sync_daily_metrics")
    rows = await timer.measure("fetch", sheets.fetch_values(sheet_id, sheet_range(sheet_name)))

    result = IngestResult(total_rows=len(rows))
    if rows:
        result.sample_row = list(rows[0][:SAMPLE_ROW_CELLS])

    candidates = collect_candidates(rows, layout, result)
    timer.mark("normalize")

    for iso_date, candidate in candidates.items():
        try:
            await store.upsert_daily_metric(candidate.to_upsert())
        except Exception as exc:
            logger.warning("[sync] Upsert failed for %s", iso_date, exc_info=True)
            result.add_error(f"Insert error for {iso_date}: {exc}")
            continue
        result.processed += 1
        if len(result.processed_dates) < MAX_PROCESSED_DATE_SAMPLES:
            result.processed_dates.append(f"{candidate.raw_date}: rev={candidate.revenue}")
    timer.mark("upsert")

    status = terminal_status(result.processed, result.error_count)
    await finish_sync(
        store,
        log_id,
        status,
        records_processed=result.processed,
        error_message="; ".join(result.errors) or None,
        details={
            "sheetName": sheet_name or DEFAULT_SHEET_NAME,
            "variant": layout,
            "skipped": result.skipped,
            "skipReasons": result.skip_reasons,
            "totalRows": result.total_rows,
        },
    )
    timer.finish(extra={"processed": result.processed, "skipped": result.skipped})
    return result
