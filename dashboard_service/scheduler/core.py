"""
APScheduler singleton for the dashboard service.

The scheduler runs in the same event loop as FastAPI. Job functions
access the database pool via the module-level `pool` variable, which
is set during startup by main.py.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from dashboard_service.config import get_scheduler_timezone

logger = logging.getLogger(__name__)

# Module-level pool reference, set by main.startup()
pool = None

_scheduler: AsyncIOScheduler | None = None


def get_scheduler() -> AsyncIOScheduler:
    """Return the singleton scheduler, creating it on first call."""
    global _scheduler
    if _scheduler is None:
        tz = get_scheduler_timezone()
        _scheduler = AsyncIOScheduler(timezone=tz)
        logger.info("Created AsyncIOScheduler (timezone=%s)", tz)
    return _scheduler
