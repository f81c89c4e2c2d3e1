"""
Dashboard summary assembly.

Two rounds of concurrent store reads feed the pure aggregator functions:

  phase 1: every read that depends only on "today"
  phase 2: reads keyed on phase-1 results (KPI windows, last-year weekly dates)

A failed read is logged and replaced by its empty default so the rest of
the dashboard still renders. Only when every phase-1 read fails does the
request fail.
"""
import asyncio
import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Dict, Optional, Tuple
from zoneinfo import ZoneInfo

from dashboard_service.config import (
    SUMMARY_CACHE_SECONDS,
    SUMMARY_STALE_WHILE_REVALIDATE_SECONDS,
    get_default_monthly_target,
    get_scheduler_timezone,
)
from dashboard_service.errors import SummaryUnavailableError
from dashboard_service.summary import aggregator
from dashboard_service.utils.timing import StageTimer

logger = logging.getLogger(__name__)

CACHE_CONTROL = (
    f"public, max-age={SUMMARY_CACHE_SECONDS}, "
    f"stale-while-revalidate={SUMMARY_STALE_WHILE_REVALIDATE_SECONDS}"
)

REVIEWS_FETCHED = 10

# (read name, default used when the read fails)
PHASE_ONE_DEFAULTS: Dict[str, Any] = {
    "monthly_target": None,
    "mtd_rows": [],
    "latest_date": None,
    "weekly_rows": [],
    "reviews": [],
    "google": None,
    "shifts": [],
    "today_metrics": None,
    "compliance": [],
    "year_rows": [],
    "monthly_targets": [],
    "last_sync": None,
}


class SummaryCache:
    """In-memory cache for assembled summaries with TTL expiration."""

    def __init__(self, ttl_seconds: int = SUMMARY_CACHE_SECONDS):
        self.cache: Dict[str, Tuple[Dict[str, Any], float]] = {}
        self.ttl = ttl_seconds

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        if key in self.cache:
            data, timestamp = self.cache[key]
            age = time.time() - timestamp
            if age < self.ttl:
                logger.debug("[summary] Cache HIT for %s (age: %.1fs)", key, age)
                return data
            logger.debug("[summary] Cache EXPIRED for %s (age: %.1fs)", key, age)
            del self.cache[key]
        return None

    def set(self, key: str, data: Dict[str, Any]) -> None:
        self.cache[key] = (data, time.time())

    def clear(self) -> None:
        self.cache.clear()


summary_cache = SummaryCache()


def venue_today(now: datetime) -> date:
    """Calendar date at the venue for an instant (naive datetimes are treated as UTC)."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(get_scheduler_timezone())).date()


async def _gather_reads(reads: Dict[str, Awaitable[Any]], defaults: Dict[str, Any]) -> Tuple[Dict[str, Any], int]:
    """Run named reads concurrently. Returns (values, failure count)."""
    names = list(reads)
    outcomes = await asyncio.gather(*reads.values(), return_exceptions=True)
    values: Dict[str, Any] = {}
    failures = 0
    for name, outcome in zip(names, outcomes):
        if isinstance(outcome, Exception):
            failures += 1
            logger.warning("[summary] Read %s failed, using default: %s", name, outcome)
            values[name] = defaults.get(name)
        else:
            values[name] = outcome
    return values, failures


async def assemble_summary(
    store, now: Optional[datetime] = None
) -> Tuple[Dict[str, Any], int]:
    """Assemble the full dashboard payload. Returns (summary, failed read count).

    Raises:
        SummaryUnavailableError: every phase-1 read failed.
    """
    now = now or datetime.now(timezone.utc)
    today = venue_today(now)
    month_start = date(today.year, today.month, 1)
    year_start = date(today.year, 1, 1)
    timer = StageTimer("dashboard_summary")

    phase_one = {
        "monthly_target": store.fetch_monthly_target(month_start),
        "mtd_rows": store.fetch_daily_range(month_start, today, descending=True),
        "latest_date": store.fetch_latest_metric_date(month_start),
        "weekly_rows": store.fetch_recent_metrics(year_start, aggregator.WEEKLY_WINDOW_DAYS),
        "reviews": store.fetch_reviews(REVIEWS_FETCHED),
        "google": store.fetch_latest_google_rating(),
        "shifts": store.fetch_shifts_for_date(today),
        "today_metrics": store.fetch_metrics_for_date(today),
        "compliance": store.fetch_compliance_items(),
        "year_rows": store.fetch_daily_range(year_start, today),
        "monthly_targets": store.fetch_monthly_targets(today.year),
        "last_sync": store.fetch_last_completed_sync(),
    }
    data, failures = await timer.measure("phase1", _gather_reads(phase_one, PHASE_ONE_DEFAULTS))
    if failures == len(phase_one):
        timer.finish(extra={"status": "unavailable"})
        raise SummaryUnavailableError("All dashboard reads failed")

    default_target = get_default_monthly_target()
    monthly_target = aggregator.resolve_target(data["monthly_target"], default_target)
    windows = aggregator.kpi_windows(today, data["latest_date"])

    phase_two = {
        "kpi_current": store.fetch_daily_range(windows["current_start"], windows["current_end"]),
        "kpi_previous": store.fetch_daily_range(windows["previous_start"], windows["previous_end"]),
        "weekly_last_year": store.fetch_metrics_on_dates(
            aggregator.weekly_last_year_dates(data["weekly_rows"])
        ),
    }
    data2, failures2 = await timer.measure(
        "phase2", _gather_reads(phase_two, {name: [] for name in phase_two})
    )

    summary = {
        "revenueVelocity": aggregator.compute_revenue_velocity(data["mtd_rows"], monthly_target, today),
        "kpiSummary": aggregator.compute_kpi_summary(
            data2["kpi_current"], data2["kpi_previous"], monthly_target
        ),
        "weeklySales": aggregator.compute_weekly_sales(data["weekly_rows"], data2["weekly_last_year"]),
        "reviews": aggregator.compute_reviews(data["reviews"]),
        "googleReviews": aggregator.compute_google_reviews(data["google"]),
        "staffing": aggregator.compute_staffing(data["shifts"], data["today_metrics"]),
        "compliance": aggregator.map_compliance(data["compliance"]),
        "monthlyPerformance": aggregator.compute_monthly_performance(
            data["year_rows"], data["monthly_targets"], today, default_target
        ),
        "syncStatus": aggregator.compute_sync_status(data["last_sync"], now),
    }
    timer.mark("aggregate")
    failed_reads = failures + failures2
    timer.finish(extra={"failed_reads": failed_reads})
    return summary, failed_reads


async def build_dashboard_summary(store, now: Optional[datetime] = None) -> Dict[str, Any]:
    summary, _ = await assemble_summary(store, now)
    return summary


async def get_dashboard_summary(
    store, now: Optional[datetime] = None, cache: Optional[SummaryCache] = None
) -> Dict[str, Any]:
    """Cached entry point used by the route."""
    cache = cache if cache is not None else summary_cache
    now = now or datetime.now(timezone.utc)
    key = venue_today(now).isoformat()
    cached = cache.get(key)
    if cached is not None:
        return cached
    summary, failed_reads = await assemble_summary(store, now)
    if failed_reads:
        logger.info("[summary] Not caching %s: %d reads failed", key, failed_reads)
    else:
        cache.set(key, summary)
    return summary
