"""API routes for the dashboard summary"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from dashboard_service.auth import AuthContext, get_auth_context
from dashboard_service.database import MetricsStore
from dashboard_service.errors import SummaryUnavailableError
from dashboard_service.summary.assembler import CACHE_CONTROL, get_dashboard_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

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


# ---------------------------------------------------------------------------
# GET /dashboard/summary
# ---------------------------------------------------------------------------
@router.get("/summary")
async def dashboard_summary(
    response: Response,
    store=Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
):
    """Everything the home dashboard renders, in one payload."""
    try:
        summary = await get_dashboard_summary(store)
    except SummaryUnavailableError as e:
        logger.error("[summary] Unavailable for user %s: %s", ctx.user_id, e)
        raise HTTPException(status_code=503, detail=str(e))
    response.headers["Cache-Control"] = CACHE_CONTROL
    return summary
