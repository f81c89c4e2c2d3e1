"""Shared fixtures for dashboard service tests."""

import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure the package is importable without an install
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dashboard_service.database import DAILY_METRIC_COLUMNS, PNL_FIELDS  # noqa: E402

# ---------------------------------------------------------------------------
# Frozen time: every date-dependent test uses this
# ---------------------------------------------------------------------------
FROZEN_NOW = "2026-03-15 03:00:00"  # 10:00 at the venue (UTC+7)
NOW = datetime(2026, 3, 15, 3, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 15)


# ---------------------------------------------------------------------------
# In-memory store with the MetricsStore interface
# ---------------------------------------------------------------------------
class FakeStore:
    """Dict-backed stand-in for MetricsStore.

    Put a method name in `failing` to make it raise, or a date in
    `failing_dates` to make that day's upsert raise.
    """

    def __init__(self):
        self.daily: Dict[date, Dict[str, Any]] = {}
        self.targets: Dict[date, float] = {}
        self.shifts: List[Dict[str, Any]] = []
        self.compliance: List[Dict[str, Any]] = []
        self.reviews: List[Dict[str, Any]] = []
        self.pnl: Dict[tuple, Dict[str, Any]] = {}
        self.sync_logs: List[Dict[str, Any]] = []
        self.failing: set = set()
        self.failing_dates: set = set()
        self.calls: List[str] = []

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise RuntimeError(f"{name} unavailable")

    # Daily metrics

    async def upsert_daily_metric(self, data):
        self._enter("upsert_daily_metric")
        if data["date"] in self.failing_dates:
            raise RuntimeError("constraint violation")
        row = self.daily.setdefault(data["date"], {"date": data["date"]})
        row.update({k: v for k, v in data.items() if k in DAILY_METRIC_COLUMNS})

    async def fetch_daily_range(self, start, end, descending=False):
        self._enter("fetch_daily_range")
        rows = [dict(r) for d, r in sorted(self.daily.items()) if start <= d <= end]
        return rows[::-1] if descending else rows

    async def fetch_latest_metric_date(self, since):
        self._enter("fetch_latest_metric_date")
        dates = [d for d in self.daily if d >= since]
        return max(dates) if dates else None

    async def fetch_recent_metrics(self, since, limit):
        self._enter("fetch_recent_metrics")
        rows = [dict(r) for d, r in sorted(self.daily.items(), reverse=True) if d >= since]
        return rows[:limit]

    async def fetch_metrics_on_dates(self, dates):
        self._enter("fetch_metrics_on_dates")
        return [dict(self.daily[d]) for d in dates if d in self.daily]

    async def fetch_metrics_for_date(self, day):
        self._enter("fetch_metrics_for_date")
        row = self.daily.get(day)
        return dict(row) if row else None

    async def fetch_latest_google_rating(self):
        self._enter("fetch_latest_google_rating")
        rated = [r for d, r in sorted(self.daily.items(), reverse=True) if r.get("google_rating") is not None]
        return dict(rated[0]) if rated else None

    # Targets

    async def fetch_monthly_target(self, period_start):
        self._enter("fetch_monthly_target")
        return self.targets.get(period_start)

    async def fetch_monthly_targets(self, year):
        self._enter("fetch_monthly_targets")
        return [
            {"period_start": d, "target_value": v}
            for d, v in sorted(self.targets.items())
            if d.year == year
        ]

    # Shifts / compliance / reviews

    async def fetch_shifts_for_date(self, day):
        self._enter("fetch_shifts_for_date")
        return [s for s in self.shifts if s.get("shift_date", day) == day]

    async def fetch_compliance_items(self):
        self._enter("fetch_compliance_items")
        return list(self.compliance)

    async def fetch_reviews(self, limit):
        self._enter("fetch_reviews")
        return self.reviews[:limit]

    # P&L

    async def fetch_pnl_records(self, keys):
        self._enter("fetch_pnl_records")
        return {k: dict(self.pnl[k]) for k in keys if k in self.pnl}

    async def upsert_pnl_record(self, year, month, data_type, values):
        self._enter("upsert_pnl_record")
        row = self.pnl.setdefault((year, month, data_type), {})
        row.update({k: v for k, v in values.items() if k in PNL_FIELDS})

    # Sync logs

    async def create_sync_log(self, sync_type, status, started_at):
        self._enter("create_sync_log")
        log_id = len(self.sync_logs) + 1
        self.sync_logs.append({
            "id": log_id,
            "sync_type": sync_type,
            "status": status,
            "started_at": started_at,
            "completed_at": None,
            "records_processed": 0,
            "error_message": None,
            "details": None,
        })
        return log_id

    async def finish_sync_log(self, log_id, status, completed_at, records_processed, error_message, details):
        self._enter("finish_sync_log")
        for log in self.sync_logs:
            if log["id"] == log_id and log["completed_at"] is None:
                log.update(
                    status=status,
                    completed_at=completed_at,
                    records_processed=records_processed,
                    error_message=error_message,
                    details=details,
                )

    async def fetch_sync_logs(self, limit):
        self._enter("fetch_sync_logs")
        return sorted(self.sync_logs, key=lambda r: r["started_at"], reverse=True)[:limit]

    async def fetch_last_completed_sync(self):
        self._enter("fetch_last_completed_sync")
        done = [
            r for r in self.sync_logs
            if r["completed_at"] is not None and r["status"] in ("completed", "success", "partial")
        ]
        if not done:
            return None
        latest = max(done, key=lambda r: r["completed_at"])
        return {"completed_at": latest["completed_at"], "status": latest["status"]}


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
def make_metric(
    day: date,
    revenue: float = 0,
    pax: int = 0,
    avg_spend: Optional[float] = None,
    **extra,
) -> Dict[str, Any]:
    """Daily metrics row; avg_spend defaults to revenue / pax."""
    if avg_spend is None:
        avg_spend = revenue / pax if pax else 0
    return {"date": day, "revenue": revenue, "pax": pax, "avg_spend": avg_spend, **extra}


def make_sheet_row(
    raw_date: str,
    revenue: str = "",
    pax: str = "",
    avg_spend: str = "",
    reviews: str = "",
    rating: str = "",
    leading_blank: bool = True,
) -> List[str]:
    """Sales26-layout row. With leading_blank the date sits in column C."""
    offset = 2 if leading_blank else 0
    row = [""] * (offset + 30)
    row[offset] = raw_date
    row[offset + 5] = revenue
    row[offset + 26] = pax
    row[offset + 27] = reviews
    row[offset + 28] = rating
    row[offset + 29] = avg_spend
    return row


def make_sheets(rows=None, csv_rows=None, configured: bool = True) -> MagicMock:
    """SheetsClient double whose fetches return the given rows."""
    sheets = MagicMock()
    sheets.is_configured = configured
    sheets.fetch_values = AsyncMock(return_value=rows or [])
    sheets.fetch_csv_rows = AsyncMock(return_value=csv_rows or [])
    return sheets


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()
