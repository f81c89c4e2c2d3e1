#!/usr/bin/env python3
"""
Apply the dashboard table migrations to the database
Run: python3 apply_migrations.py
"""

import asyncio
import asyncpg
from pathlib import Path

from dashboard_service.config import get_database_url, load_env

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


async def apply_migrations():
    load_env()
    database_url = get_database_url()
    if not database_url:
        print("ERROR: DATABASE_URL environment variable not set")
        return

    migration_files = sorted(MIGRATIONS_DIR.glob("*.sql"))
    conn = await asyncpg.connect(database_url)

    try:
        for migration_file in migration_files:
            print(f"Applying {migration_file.name}...")
            await conn.execute(migration_file.read_text())

        tables = await conn.fetch("""
            SELECT tablename
            FROM pg_tables
            WHERE schemaname = 'public'
            ORDER BY tablename;
        """)

        print(f"\n✅ {len(migration_files)} migrations applied, {len(tables)} tables in database:")
        for t in tables:
            print(f"   - {t['tablename']}")

    except Exception as e:
        print(f"❌ Error applying migrations: {e}")
    finally:
        await conn.close()

if __name__ == "__main__":
    asyncio.run(apply_migrations())
