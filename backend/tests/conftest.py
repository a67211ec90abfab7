"""Root conftest: shared test configuration.

Invariants:
    - Settings are read at import time, so env vars are set before anything from noted is imported
    - Every test gets freshly created tables in a temp-file SQLite database
    - Scheduler never starts under TestClient; SMTP credentials are blank
"""
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="noted-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["CRON_SECRET"] = ""
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASSWORD"] = ""
os.environ["APP_URL"] = "https://noted.test"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import noted.models  # noqa: F401
from noted.db.base import Base
from noted.db.session import engine, get_db
from fakes import FakeTransport


@pytest.fixture
def session_factory():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client(session_factory, transport):
    """FastAPI test client with DB and transport dependencies overridden."""
    from noted.api.routes import cron
    from noted.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[cron.get_session_factory] = lambda: session_factory
    app.dependency_overrides[cron.get_transport_factory] = lambda: (lambda: transport)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
