import os
from contextlib import redirect_stderr, redirect_stdout
from io import StringIO
from pathlib import Path

import pytest

# Ensure tests run against SQLite when DATABASE_URL is not defined
os.environ.setdefault("DATABASE_URL", "sqlite:////tmp/session_engine_test.db")
os.environ.setdefault("API_KEY", "test-api-key")

from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import delete

from session_engine import db as db_module
from session_engine import dependencies
from session_engine.config import Settings
from session_engine.db import init_db
from session_engine.main import app
from session_engine.models import (
    Institution,
    PricingOverride,
    PricingSettings,
    ScheduledPriceChange,
    SessionAllocation,
    SessionPool,
    SessionPurchase,
    SessionRequest,
)

# child tables first
_TABLES = (
    SessionRequest,
    SessionAllocation,
    SessionPool,
    SessionPurchase,
    ScheduledPriceChange,
    PricingOverride,
    PricingSettings,
    Institution,
)


def _sqlite_path() -> Path | None:
    db_url = os.environ.get("DATABASE_URL", "")
    if db_url.startswith("sqlite:///"):
        return Path(db_url.replace("sqlite:///", ""))
    return None


@pytest.fixture(scope="session", autouse=True)
def apply_migrations():
    """Apply Alembic migrations before running tests."""
    db_path = _sqlite_path()
    if db_path is not None and db_path.exists():
        db_path.unlink()
    cfg_path = Path(__file__).resolve().parent.parent / "alembic.ini"
    config = Config(str(cfg_path))
    stdout_buf, stderr_buf = StringIO(), StringIO()
    try:
        with redirect_stdout(stdout_buf), redirect_stderr(stderr_buf):
            command.upgrade(config, "head")
    except Exception as exc:
        print("Alembic upgrade failed:", exc)
        print("stdout:\n", stdout_buf.getvalue())
        print("stderr:\n", stderr_buf.getvalue())
        raise
    init_db(Settings())


@pytest.fixture(scope="session", autouse=True)
def remove_test_db():
    """Remove temporary SQLite database after tests finish."""
    yield
    db_path = _sqlite_path()
    if db_path is not None and db_path.exists():
        db_path.unlink()


@pytest.fixture(autouse=True)
def clean_tables(apply_migrations):
    yield
    with db_module.SessionLocal() as db:
        for model in _TABLES:
            db.execute(delete(model))
        db.commit()


@pytest.fixture(scope="module")
def client(apply_migrations):
    """Yields a TestClient with lifespan events."""
    with TestClient(app) as client:
        yield client


@pytest.fixture(autouse=True)
def mock_redis(monkeypatch):
    class _Pipe:
        def __init__(self, store):
            self.store = store
            self.ops = []

        def incr(self, key):
            self.ops.append(("incr", key))
            return self

        def expire(self, key, ttl):
            self.ops.append(("expire", key, ttl))
            return self

        async def execute(self):
            results = []
            for op in self.ops:
                if op[0] == "incr":
                    key = op[1]
                    self.store[key] = self.store.get(key, 0) + 1
                    results.append(self.store[key])
                else:
                    results.append(True)
            self.ops.clear()
            return results

    class _Redis:
        def __init__(self):
            self.store = {}

        def pipeline(self):
            return _Pipe(self.store)

    fake = _Redis()
    monkeypatch.setattr(dependencies, "redis_client", fake)
    yield


@pytest.fixture
def db():
    """A session for arranging and inspecting state; commit explicitly."""
    with db_module.SessionLocal() as session:
        yield session


@pytest.fixture
def make_institution(db):
    def _make(institution_id: str = "inst-1", name: str | None = None) -> str:
        db.add(Institution(id=institution_id, name=name or f"Institution {institution_id}"))
        db.commit()
        return institution_id

    return _make


@pytest.fixture
def institution(make_institution):
    return make_institution("inst-1")
