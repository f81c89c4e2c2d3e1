"""Tests for environment-driven configuration."""

from dashboard_service.config import (
    DEFAULT_MONTHLY_TARGET,
    fix_database_url,
    get_cors_origins,
    get_daily_sync_settings,
    get_database_url,
    get_default_monthly_target,
)


def test_prisma_sslmode_is_converted():
    assert fix_database_url("postgres://u:p@h/db?sslmode=require") == "postgres://u:p@h/db?ssl=require"
    assert fix_database_url("postgres://u:p@h/db") == "postgres://u:p@h/db"


def test_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert get_database_url() is None
    monkeypatch.setenv("DATABASE_URL", "postgres://h/db?sslmode=require")
    assert get_database_url() == "postgres://h/db?ssl=require"


def test_cors_origins(monkeypatch):
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", "https://a.example, ,https://b.example")
    assert get_cors_origins() == ["https://a.example", "https://b.example"]


def test_monthly_target_default(monkeypatch):
    monkeypatch.delenv("DASHBOARD_MONTHLY_TARGET_DEFAULT", raising=False)
    assert get_default_monthly_target() == DEFAULT_MONTHLY_TARGET
    monkeypatch.setenv("DASHBOARD_MONTHLY_TARGET_DEFAULT", "lots")
    assert get_default_monthly_target() == DEFAULT_MONTHLY_TARGET
    monkeypatch.setenv("DASHBOARD_MONTHLY_TARGET_DEFAULT", "800000000")
    assert get_default_monthly_target() == 800_000_000


def test_daily_sync_settings(monkeypatch):
    monkeypatch.delenv("DAILY_SYNC_SHEET_ID", raising=False)
    assert get_daily_sync_settings() is None

    monkeypatch.setenv("DAILY_SYNC_SHEET_ID", "abc")
    monkeypatch.setenv("DAILY_SYNC_SHEET_NAME", "Sales25*")
    monkeypatch.setenv("DAILY_SYNC_CRON_HOUR", "not-an-hour")
    assert get_daily_sync_settings() == {"sheet_id": "abc", "sheet_name": "Sales25*", "hour": 6}
