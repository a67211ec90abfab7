"""
Database engine and session factory.

Postgres in production; SQLite works for local runs and tests (the quota lock falls back to a
process-local lock there). Each consumer job opens its own session from SessionLocal.
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from noted.config import settings


def _engine_kwargs(url: str) -> dict:
    if make_url(url).get_backend_name() == "sqlite":
        # Worker threads share the pool; in-memory databases are not supported
        return {"pool_pre_ping": True}
    # Queue workers + API requests + scheduler ticks share this pool
    return {
        "pool_size": max(settings.email_max_workers, 8),
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_timeout": 30,
    }


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
