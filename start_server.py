#!/usr/bin/env python3
"""Start the dashboard API with environment variables loaded"""
import os
import sys

import uvicorn

from dashboard_service.config import get_jwt_secret, load_env


def main():
    load_env()

    if not os.getenv("DATABASE_URL"):
        print("ERROR: DATABASE_URL not set!")
        sys.exit(1)
    if not os.getenv("GOOGLE_API_KEY"):
        print("WARNING: GOOGLE_API_KEY not set, sheet syncs will be rejected")
    if not get_jwt_secret():
        print("WARNING: no JWT secret set, every authenticated request will be rejected")

    print("[OK] Environment variables loaded")
    print(f"[OK] DATABASE_URL: {os.getenv('DATABASE_URL')[:50]}...")

    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("dashboard_service.main:app", host="0.0.0.0", port=port, reload=False)


if __name__ == "__main__":
    main()
