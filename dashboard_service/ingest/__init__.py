"""Google Sheets ingestion for daily metrics and monthly P&L records.

Modules:
    normalizer - Row-level parsing for the daily sales sheet variants
    sheets_client - Sheets v4 values API + CSV export fetchers
    daily_metrics - Daily metrics ingestion run (upsert by date)
    pnl - P&L category-row ingestion (upsert by year/month/type)
    sync_log - Sync log lifecycle (running -> terminal status)
"""
