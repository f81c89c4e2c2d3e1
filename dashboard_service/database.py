"""asyncpg-backed store for daily metrics, targets, P&L records and sync logs.

All SQL lives here. Ingestion and summary code talk to MetricsStore
through named read/upsert methods, so tests can swap in an in-memory store.
"""
import json
import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import asyncpg

from dashboard_service.config import get_database_url

logger = logging.getLogger(__name__)

DAILY_METRIC_COLUMNS = (
    "date", "revenue", "pax", "avg_spend", "staff_on_duty",
    "google_rating", "google_review_count",
)

PNL_FIELDS = (
    "gross_sales", "net_sales",
    "revenue_food", "revenue_beer", "revenue_wine", "revenue_spirits",
    "revenue_cocktails", "revenue_shisha", "revenue_balloons", "revenue_other",
    "cogs", "labor_cost", "fixed_costs", "opex", "total_expenses", "ebit",
)


def _record(row: Optional[asyncpg.Record]) -> Optional[Dict[str, Any]]:
    return dict(row) if row is not None else None


def _records(rows: Iterable[asyncpg.Record]) -> List[Dict[str, Any]]:
    return [dict(r) for r in rows]


class MetricsStore:
    """Named queries over the dashboard tables, sharing one connection pool."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    # ── Daily metrics ─────────────────────────────────────────

    async def upsert_daily_metric(self, data: Dict[str, Any]) -> None:
        """Insert or overwrite one day. Optional columns absent from *data* are left untouched."""
        columns = [c for c in DAILY_METRIC_COLUMNS if c in data]
        if "date" not in columns:
            raise ValueError("daily metric upsert requires a date")
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        updates = ", ".join(
            f"{c} = EXCLUDED.{c}" for c in columns if c != "date"
        )
        sql = (
            f"INSERT INTO daily_metrics ({', '.join(columns)}, updated_at) "
            f"VALUES ({placeholders}, NOW()) "
            f"ON CONFLICT (date) DO UPDATE SET {updates}, updated_at = NOW()"
        )
        async with self.pool.acquire() as conn:
            await conn.execute(sql, *[data[c] for c in columns])

    async def fetch_daily_range(
        self, start: date, end: date, descending: bool = False
    ) -> List[Dict[str, Any]]:
        order = "DESC" if descending else "ASC"
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT date, revenue, pax, avg_spend
                FROM daily_metrics
                WHERE date >= $1 AND date <= $2
                ORDER BY date {order}
                """,
                start,
                end,
            )
        return _records(rows)

    async def fetch_latest_metric_date(self, since: date) -> Optional[date]:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT MAX(date) FROM daily_metrics WHERE date >= $1", since
            )

    async def fetch_recent_metrics(self, since: date, limit: int) -> List[Dict[str, Any]]:
        """Most recent *limit* rows on or after *since*, newest first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT date, revenue
                FROM daily_metrics
                WHERE date >= $1
                ORDER BY date DESC
                LIMIT $2
                """,
                since,
                limit,
            )
        return _records(rows)

    async def fetch_metrics_on_dates(self, dates: Sequence[date]) -> List[Dict[str, Any]]:
        if not dates:
            return []
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT date, revenue FROM daily_metrics WHERE date = ANY($1::date[])",
                list(dates),
            )
        return _records(rows)

    async def fetch_metrics_for_date(self, day: date) -> Optional[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT date, pax, staff_on_duty FROM daily_metrics WHERE date = $1", day
            )
        return _record(row)

    async def fetch_latest_google_rating(self) -> Optional[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT date, google_rating, google_review_count
                FROM daily_metrics
                WHERE google_rating IS NOT NULL
                ORDER BY date DESC
                LIMIT 1
                """
            )
        return _record(row)

    # ── Targets ───────────────────────────────────────────────

    async def fetch_monthly_target(self, period_start: date) -> Optional[float]:
        async with self.pool.acquire() as conn:
            value = await conn.fetchval(
                """
                SELECT target_value FROM targets
                WHERE metric = 'revenue' AND period = 'monthly' AND period_start = $1
                """,
                period_start,
            )
        return float(value) if value is not None else None

    async def fetch_monthly_targets(self, year: int) -> List[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT period_start, target_value FROM targets
                WHERE metric = 'revenue' AND period = 'monthly'
                  AND period_start >= $1 AND period_start <= $2
                ORDER BY period_start
                """,
                date(year, 1, 1),
                date(year, 12, 31),
            )
        return _records(rows)

    # ── Shifts / compliance / reviews ─────────────────────────

    async def fetch_shifts_for_date(self, day: date) -> List[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT id, role, status FROM shifts WHERE shift_date = $1", day
            )
        return _records(rows)

    async def fetch_compliance_items(self) -> List[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, title, description, type, status, due_date, completed_at
                FROM compliance_items
                ORDER BY due_date ASC NULLS LAST
                """
            )
        return _records(rows)

    async def fetch_reviews(self, limit: int) -> List[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, source, author_name, rating, comment, sentiment_score, published_at
                FROM reviews
                ORDER BY published_at DESC
                LIMIT $1
                """,
                limit,
            )
        return _records(rows)

    # ── P&L ───────────────────────────────────────────────────

    async def fetch_pnl_records(
        self, keys: Sequence[Tuple[int, int, str]]
    ) -> Dict[Tuple[int, int, str], Dict[str, Any]]:
        """Stored records for the given (year, month, data_type) keys."""
        if not keys:
            return {}
        years = sorted({k[0] for k in keys})
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT year, month, data_type, {', '.join(PNL_FIELDS)}
                FROM pnl_monthly
                WHERE year = ANY($1::int[])
                """,
                years,
            )
        wanted = set(keys)
        found = {}
        for row in rows:
            key = (row["year"], row["month"], row["data_type"])
            if key in wanted:
                found[key] = dict(row)
        return found

    async def upsert_pnl_record(
        self, year: int, month: int, data_type: str, values: Dict[str, float]
    ) -> None:
        """Write only the category columns present in *values*."""
        fields = [f for f in PNL_FIELDS if f in values]
        if not fields:
            return
        columns = ["year", "month", "data_type"] + fields
        params = [year, month, data_type] + [values[f] for f in fields]
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        updates = ", ".join(f"{f} = EXCLUDED.{f}" for f in fields)
        sql = (
            f"INSERT INTO pnl_monthly ({', '.join(columns)}, updated_at) "
            f"VALUES ({placeholders}, NOW()) "
            f"ON CONFLICT (year, month, data_type) DO UPDATE SET {updates}, updated_at = NOW()"
        )
        async with self.pool.acquire() as conn:
            await conn.execute(sql, *params)

    # ── Sync logs ─────────────────────────────────────────────

    async def create_sync_log(self, sync_type: str, status: str, started_at: datetime) -> int:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                """
                INSERT INTO sync_logs (sync_type, status, started_at)
                VALUES ($1, $2, $3)
                RETURNING id
                """,
                sync_type,
                status,
                started_at,
            )

    async def finish_sync_log(
        self,
        log_id: int,
        status: str,
        completed_at: datetime,
        records_processed: int,
        error_message: Optional[str],
        details: Optional[Dict[str, Any]],
    ) -> None:
        """Move a running entry to its terminal status. Finished entries are never rewritten."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE sync_logs
                   SET status = $2,
                       completed_at = $3,
                       records_processed = $4,
                       error_message = $5,
                       details = $6::jsonb
                 WHERE id = $1 AND completed_at IS NULL
                """,
                log_id,
                status,
                completed_at,
                records_processed,
                error_message,
                json.dumps(details, default=str) if details else None,
            )

    async def fetch_sync_logs(self, limit: int) -> List[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, sync_type, status, started_at, completed_at,
                       records_processed, error_message
                FROM sync_logs
                ORDER BY started_at DESC
                LIMIT $1
                """,
                limit,
            )
        return _records(rows)

    async def fetch_last_completed_sync(self) -> Optional[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT completed_at, status
                FROM sync_logs
                WHERE completed_at IS NOT NULL
                  AND status IN ('completed', 'success', 'partial')
                ORDER BY completed_at DESC
                LIMIT 1
                """
            )
        return _record(row)


async def create_pool(database_url: Optional[str] = None) -> asyncpg.Pool:
    """Create the service's connection pool."""
    url = database_url or get_database_url()
    if not url:
        raise RuntimeError("DATABASE_URL is required")
    pool = await asyncpg.create_pool(url, min_size=2, max_size=10)
    logger.info("Database connection pool created (min: 2, max: 10)")
    return pool
