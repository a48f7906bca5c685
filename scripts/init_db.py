from __future__ import annotations
import logging
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from togglsync.db.connection import get_engine
from togglsync.db.migrate import run_migrations
from togglsync.utils.logging import configure_logging

def main() -> None:
    configure_logging()
    log = logging.getLogger("init_db")
    engine = get_engine(os.getenv("DATABASE_URL") or None)
    applied = run_migrations(engine)
    log.info("DB schema applied successfully. versions=%s", applied)

if __name__ == "__main__":
    main()
