# dashboard_service/config.py

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Fallbacks used when a value is missing from the store or the environment
DEFAULT_MONTHLY_TARGET = 750_000_000
DEFAULT_SHEET_NAME = "Sales26*"
DEFAULT_SHEET_RANGE = "A16:AF386"
DEFAULT_PNL_RANGE = "A1:AZ200"
DEFAULT_SCHEDULER_TIMEZONE = "Asia/Ho_Chi_Minh"
DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:3000"

SUMMARY_CACHE_SECONDS = 300
SUMMARY_STALE_WHILE_REVALIDATE_SECONDS = 60
SUMMARY_CLIENT_TIMEOUT_SECONDS = 10.0


def load_env() -> None:
    """Load a .env file from the project root or the working directory, if present."""
    for env_path in (Path(__file__).parent.parent / ".env", Path.cwd() / ".env"):
        if env_path.exists():
            load_dotenv(env_path)
            logger.info("Loaded environment from %s", env_path)
            return


def fix_database_url(url: str) -> str:
    """Convert Prisma-style sslmode param to asyncpg format."""
    if "?sslmode=" in url:
        return url.replace("?sslmode=require", "?ssl=require")
    return url


def get_database_url() -> Optional[str]:
    url = os.getenv("DATABASE_URL")
    return fix_database_url(url) if url else None


def get_google_api_key() -> str:
    return os.getenv("GOOGLE_API_KEY", "")


def get_jwt_secret() -> str:
    return os.getenv("SUPABASE_JWT_SECRET", "")


def get_cors_origins() -> List[str]:
    raw = os.getenv("CORS_ALLOWED_ORIGINS", DEFAULT_CORS_ORIGINS)
    return [o.strip() for o in raw.split(",") if o.strip()]


def get_default_monthly_target() -> float:
    raw = os.getenv("DASHBOARD_MONTHLY_TARGET_DEFAULT")
    if not raw:
        return DEFAULT_MONTHLY_TARGET
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid DASHBOARD_MONTHLY_TARGET_DEFAULT=%r", raw)
        return DEFAULT_MONTHLY_TARGET


def get_scheduler_timezone() -> str:
    return os.getenv("SCHEDULER_TIMEZONE", DEFAULT_SCHEDULER_TIMEZONE)


def get_daily_sync_settings() -> Optional[dict]:
    """Scheduled daily-metrics sync settings, or None when no sheet is configured."""
    sheet_id = os.getenv("DAILY_SYNC_SHEET_ID")
    if not sheet_id:
        return None
    try:
        hour = int(os.getenv("DAILY_SYNC_CRON_HOUR", "6"))
    except ValueError:
        hour = 6
    return {
        "sheet_id": sheet_id,
        "sheet_name": os.getenv("DAILY_SYNC_SHEET_NAME", DEFAULT_SHEET_NAME),
        "hour": hour,
    }
