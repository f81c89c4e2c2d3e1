"""API routes for spreadsheet syncs and sync history"""
import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from dashboard_service.auth import MANAGER, OWNER, require_roles
from dashboard_service.database import MetricsStore
from dashboard_service.errors import ConfigurationError, UpstreamFetchError, describe_error
from dashboard_service.ingest.daily_metrics import ingest_daily_metrics
from dashboard_service.ingest.pnl import ingest_pnl
from dashboard_service.ingest.sheets_client import SheetsClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])

_pool = None


def set_pool(pool):
    """Set the connection pool (called by main.py on startup)."""
    global _pool
    _pool = pool


def _get_pool():
    if _pool is not None:
        return _pool
    raise HTTPException(status_code=503, detail="Database pool not available")


def get_store() -> MetricsStore:
    return MetricsStore(_get_pool())


def get_sheets_client() -> SheetsClient:
    return SheetsClient()


class DailyMetricsSyncRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sheet_id: Optional[str] = Field(default=None, alias="sheetId")
    sheet_name: Optional[str] = Field(default=None, alias="sheetName")
    variant: Optional[str] = None


class PnlSyncRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sheet_id: Optional[str] = Field(default=None, alias="sheetId")
    sheet_name: Optional[str] = Field(default=None, alias="sheetName")
    csv_url: Optional[str] = Field(default=None, alias="csvUrl")
    year_override: Optional[int] = Field(default=None, alias="yearOverride")


def _failure(exc: Exception) -> JSONResponse:
    body = {"success": False, "error": describe_error(exc)}
    if isinstance(exc, UpstreamFetchError) and exc.status is not None:
        body["upstreamStatus"] = exc.status
    return JSONResponse(status_code=400, content=body)


def _jsonable(row: dict) -> dict:
    return {
        k: v.isoformat() if isinstance(v, (date, datetime)) else v
        for k, v in row.items()
    }


# ---------------------------------------------------------------------------
# POST /sync/daily-metrics
# ---------------------------------------------------------------------------
@router.post("/daily-metrics")
async def sync_daily_metrics(
    body: DailyMetricsSyncRequest,
    store=Depends(get_store),
    sheets=Depends(get_sheets_client),
    _ctx=Depends(require_roles(OWNER, MANAGER)),
):
    """Pull the sales tab into daily_metrics."""
    try:
        result = await ingest_daily_metrics(store, sheets, body.sheet_id, body.sheet_name, body.variant)
    except (ConfigurationError, UpstreamFetchError) as e:
        logger.error("Daily metrics sync failed: %s", e)
        return _failure(e)
    return result.to_response()


# ---------------------------------------------------------------------------
# POST /sync/pnl
# ---------------------------------------------------------------------------
@router.post("/pnl")
async def sync_pnl(
    body: PnlSyncRequest,
    store=Depends(get_store),
    sheets=Depends(get_sheets_client),
    _ctx=Depends(require_roles(OWNER)),
):
    """Pull a P&L tab into pnl_monthly."""
    try:
        result = await ingest_pnl(
            store,
            sheets,
            body.sheet_id,
            body.sheet_name,
            csv_url=body.csv_url,
            year_override=body.year_override,
        )
    except (ConfigurationError, UpstreamFetchError) as e:
        logger.error("P&L sync failed: %s", e)
        return _failure(e)
    return result.to_response()


# ---------------------------------------------------------------------------
# GET /sync/logs
# ---------------------------------------------------------------------------
@router.get("/logs")
async def get_sync_logs(
    limit: int = Query(20, ge=1, le=200),
    store=Depends(get_store),
    _ctx=Depends(require_roles(OWNER, MANAGER)),
):
    """Most recent sync runs, newest first."""
    try:
        rows = await store.fetch_sync_logs(limit)
    except Exception as e:
        logger.error("Failed to fetch sync logs: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to fetch sync logs: {str(e)}")
    return [_jsonable(r) for r in rows]
