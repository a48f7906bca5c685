from __future__ import annotations
from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from togglsync.config import build_db_url

load_dotenv()

CONNECT_TIMEOUT_SECONDS = 5

def get_engine(url: str | None = None) -> Engine:
    url = url or build_db_url()
    if url.startswith("sqlite"):
        return create_engine(url, future=True)
    return create_engine(
        url,
        future=True,
        pool_size=5,
        max_overflow=5,
        pool_pre_ping=True,
        pool_recycle=1800,
        connect_args={"connect_timeout": CONNECT_TIMEOUT_SECONDS},
    )

def check_connection(engine: Engine) -> None:
    """Fail fast when the database is unreachable."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
