from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from togglsync.db.connection import get_engine  # noqa: E402
from togglsync.db.migrate import run_migrations  # noqa: E402


def _db_url_from_env() -> str:
    if os.getenv("TEST_DATABASE_URL"):
        return os.environ["TEST_DATABASE_URL"]
    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5433")
    name = os.getenv("DB_NAME", "togglsync")
    user = os.getenv("DB_USER", "togglsync")
    password = os.getenv("DB_PASSWORD", "togglsync")
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{name}"


@pytest.fixture(scope="session")
def db_engine():
    url = _db_url_from_env()
    engine = create_engine(url, connect_args={"connect_timeout": 3})
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        pytest.skip(f"Database not available for tests: {exc}")
    return engine


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'togglsync.db'}"


@pytest.fixture
def sqlite_engine(sqlite_url):
    engine = get_engine(sqlite_url)
    run_migrations(engine)
    yield engine
    engine.dispose()
