#!/usr/bin/env python3
"""
Quick checks so the backend can start and send email. Run from repo root or backend/:
  python scripts/check_backend.py
"""
import os
import sys
from pathlib import Path

# Run from backend/
backend_dir = Path(__file__).resolve().parent.parent
os.chdir(backend_dir)
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))


def main():
    errors = []

    # 1) .env
    env_file = backend_dir / ".env"
    if not env_file.exists():
        errors.append("backend/.env missing. Copy from backend/.env.example and set DATABASE_URL, SMTP_USER, etc.")
    else:
        print("OK  .env exists")

    # 2) DB connection + tables
    try:
        from sqlalchemy import inspect, text

        from noted.db.session import engine
        from noted.db.tables import ALL_TABLE_NAMES

        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("OK  Database connection (DATABASE_URL)")
        missing = sorted(set(ALL_TABLE_NAMES) - set(inspect(engine).get_table_names()))
        if missing:
            errors.append(f"Missing tables {missing}. Run: alembic upgrade head")
            print("FAIL Missing tables:", ", ".join(missing))
        else:
            print("OK  All tables present")
    except Exception as e:
        errors.append(f"Database: {e}")
        print("FAIL Database:", e)

    # 3) SMTP credentials (the queue marks every job failed without them)
    from noted.config import settings

    if settings.smtp_user and settings.smtp_password:
        print(f"OK  SMTP credentials set ({settings.smtp_host}:{settings.smtp_port})")
    else:
        errors.append("SMTP_USER / SMTP_PASSWORD not set; email jobs will be recorded as failed.")
        print("FAIL SMTP credentials missing")

    # 4) App import (catches missing deps, bad imports)
    try:
        from noted.main import app  # noqa: F401
        print("OK  App import (noted.main)")
    except Exception as e:
        errors.append(f"App import: {e}")
        print("FAIL App import:", e)

    # 5) Port 8000
    try:
        import socket
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 8000))
        print("OK  Port 8000 is free")
    except OSError:
        errors.append("Port 8000 is in use. Stop the other process or use another port (e.g. --port 8001).")
        print("FAIL Port 8000 is in use")

    if errors:
        print("\n---")
        for e in errors:
            print("•", e)
        return 1

    print("\nAll checks passed. Start with: uvicorn noted.main:app --reload --port 8000")
    return 0


if __name__ == "__main__":
    sys.exit(main())
