"""
Job registry for the dashboard scheduler.

The only job is the daily-metrics sheet sync. It runs the same pipeline
as POST /sync/daily-metrics, so each run leaves its own sync_logs row;
`run_job` adds timing and keeps a failed run from escaping into the
scheduler.
"""

import functools
import logging
import time

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from dashboard_service.config import get_daily_sync_settings
from dashboard_service.database import MetricsStore
from dashboard_service.ingest.daily_metrics import ingest_daily_metrics
from dashboard_service.ingest.sheets_client import SheetsClient
from dashboard_service.scheduler import core as _core

logger = logging.getLogger(__name__)

DAILY_SYNC_JOB_ID = "daily_metrics_sync"


def _get_pool():
    p = _core.pool
    if p is None:
        raise RuntimeError("Database pool not initialised; scheduler job cannot run")
    return p


# ---------------------------------------------------------------------------
# Job-run logging wrapper
# ---------------------------------------------------------------------------

def run_job(job_id: str):
    """Decorator that wraps an async job function with start/end logging."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            t0 = time.monotonic()
            logger.info("[scheduler] START %s", job_id)
            status = "success"
            result_data = None
            try:
                result_data = await fn(*args, **kwargs)
            except Exception as exc:
                status = "failure"
                logger.error("[scheduler] FAIL %s: %s", job_id, exc, exc_info=True)
            duration_ms = int((time.monotonic() - t0) * 1000)
            logger.info("[scheduler] END %s status=%s duration=%dms", job_id, status, duration_ms)
            return result_data

        wrapper._job_id = job_id
        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Job functions
# ---------------------------------------------------------------------------

@run_job(DAILY_SYNC_JOB_ID)
async def job_daily_metrics_sync(sheet_id: str, sheet_name: str):
    """Pull the sales tab into daily_metrics."""
    store = MetricsStore(_get_pool())
    result = await ingest_daily_metrics(store, SheetsClient(), sheet_id, sheet_name)
    return result.to_response()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def register_default_jobs(scheduler: AsyncIOScheduler) -> None:
    """Register cron jobs that have the configuration they need."""
    settings = get_daily_sync_settings()
    if settings is None:
        logger.info("[scheduler] DAILY_SYNC_SHEET_ID not set; daily sync not scheduled")
        return

    scheduler.add_job(
        job_daily_metrics_sync,
        "cron",
        id=DAILY_SYNC_JOB_ID,
        hour=settings["hour"], minute=0,
        kwargs={"sheet_id": settings["sheet_id"], "sheet_name": settings["sheet_name"]},
        replace_existing=True,
    )
