"""
Sync log lifecycle.

Every ingestion run records one sync_logs row: inserted as 'running' when
the run starts and moved once to a terminal status when it ends. The
dashboard's freshness indicator reads the newest finished row.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


TERMINAL_STATUSES = {SyncStatus.COMPLETED, SyncStatus.SUCCESS, SyncStatus.PARTIAL, SyncStatus.FAILED}


class SyncType(str, Enum):
    DAILY_METRICS = "daily_metrics"
    PNL = "pnl"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def terminal_status(processed: int, error_count: int) -> SyncStatus:
    """completed = clean run, partial = rows landed with some errors, failed = nothing landed."""
    if processed <= 0:
        return SyncStatus.FAILED
    if error_count:
        return SyncStatus.PARTIAL
    return SyncStatus.COMPLETED


async def start_sync(store, sync_type: SyncType) -> Optional[int]:
    """Insert the 'running' row. Returns None when the log write itself fails."""
    try:
        log_id = await store.create_sync_log(sync_type.value, SyncStatus.RUNNING.value, utcnow())
    except Exception:
        logger.warning("[sync] Could not insert sync_logs row for %s", sync_type.value, exc_info=True)
        return None
    logger.info("[sync] START %s (log=%s)", sync_type.value, log_id)
    return log_id


async def finish_sync(
    store,
    log_id: Optional[int],
    status: SyncStatus,
    records_processed: int = 0,
    error_message: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    if status not in TERMINAL_STATUSES:
        raise ValueError(f"{status} is not a terminal sync status")
    logger.info(
        "[sync] END log=%s status=%s processed=%d%s",
        log_id,
        status.value,
        records_processed,
        f" error={error_message}" if error_message else "",
    )
    if log_id is None:
        return
    try:
        await store.finish_sync_log(
            log_id, status.value, utcnow(), records_processed, error_message, details
        )
    except Exception:
        logger.warning("[sync] Could not update sync_logs row %s", log_id, exc_info=True)
