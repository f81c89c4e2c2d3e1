"""
FastAPI service for the venue dashboard.
Serves the dashboard summary and runs the spreadsheet syncs.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import asyncpg
import logging

from dashboard_service.config import get_cors_origins, load_env
from dashboard_service.database import create_pool

load_env()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Venue Dashboard API",
    description="Dashboard summary and Google Sheets sync for the venue dashboard",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global connection pool
_pool: asyncpg.Pool | None = None


@app.on_event("startup")
async def startup():
    global _pool
    _pool = await create_pool()

    # Inject pool into route modules
    from dashboard_service.api.sync_routes import set_pool as set_sync_pool
    from dashboard_service.api.summary_routes import set_pool as set_summary_pool
    set_sync_pool(_pool)
    set_summary_pool(_pool)

    # Initialise scheduler
    from dashboard_service.scheduler.core import get_scheduler
    from dashboard_service.scheduler import core as scheduler_core
    from dashboard_service.scheduler.jobs import register_default_jobs

    scheduler_core.pool = _pool
    scheduler = get_scheduler()
    register_default_jobs(scheduler)
    scheduler.start()
    logger.info("APScheduler started with %d jobs", len(scheduler.get_jobs()))

    logger.info("Dashboard service ready")


@app.on_event("shutdown")
async def shutdown():
    global _pool

    # Shut down scheduler before closing the pool
    from dashboard_service.scheduler.core import get_scheduler
    from dashboard_service.scheduler import core as scheduler_core
    try:
        scheduler = get_scheduler()
        if scheduler.running:
            scheduler.shutdown(wait=False)
            logger.info("APScheduler shut down")
    except Exception:
        logger.warning("Error shutting down scheduler", exc_info=True)
    scheduler_core.pool = None

    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Dashboard DB pool closed")


@app.get("/")
async def root():
    return {"service": "Venue Dashboard API", "version": "1.0.0", "status": "running"}


@app.get("/health")
async def health():
    if _pool is None:
        return {"status": "unhealthy", "reason": "no db pool"}
    try:
        async with _pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return {"status": "healthy"}
    except Exception as e:
        return {"status": "unhealthy", "reason": str(e)}


# Mount routers
from dashboard_service.api.sync_routes import router as sync_router  # noqa: E402
from dashboard_service.api.summary_routes import router as summary_router  # noqa: E402
app.include_router(sync_router)
app.include_router(summary_router)
