from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Set

from sqlalchemy import text
from sqlalchemy.engine import Engine

from togglsync.errors import MigrationError

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
  version BIGINT PRIMARY KEY,
  applied_at TIMESTAMPTZ NOT NULL
)
"""

log = logging.getLogger("migrate")


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    sql: str


def parse_version(filename: str) -> int:
    """Return the numeric prefix of a script name like ``0001_init.sql``."""
    prefix, sep, _ = filename.partition("_")
    if not sep or not prefix:
        raise MigrationError(f"invalid migration filename {filename!r}: missing version prefix")
    if not prefix.isdigit():
        raise MigrationError(f"invalid migration filename {filename!r}: version {prefix!r} is not a number")
    return int(prefix)


def order_migrations(migrations: Iterable[Migration]) -> List[Migration]:
    ordered = sorted(migrations, key=lambda m: m.version)
    seen: Set[int] = set()
    for m in ordered:
        if m.version in seen:
            raise MigrationError(f"duplicate migration version {m.version} ({m.name})")
        seen.add(m.version)
    return ordered


def load_migrations(directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    migrations = []
    for path in directory.glob("*.sql"):
        migrations.append(Migration(parse_version(path.name), path.name, path.read_text(encoding="utf-8")))
    return order_migrations(migrations)


def applied_versions(conn) -> Set[int]:
    rows = conn.execute(text("SELECT version FROM schema_migrations")).all()
    return {int(r[0]) for r in rows}


def run_migrations(engine: Engine, migrations: Optional[Iterable[Migration]] = None) -> List[int]:
    """Apply pending migrations in ascending version order.

    Each script runs in its own transaction together with its ledger row, so a
    failing script leaves neither partial DDL (where the database supports
    transactional DDL) nor a ledger record behind. Returns the versions applied
    by this call.
    """
    pending = order_migrations(migrations) if migrations is not None else load_migrations()

    try:
        with engine.begin() as conn:
            conn.execute(text(LEDGER_DDL))
            applied = applied_versions(conn)
    except Exception as exc:
        raise MigrationError(f"cannot read migration ledger: {exc}") from exc

    done: List[int] = []
    for m in pending:
        if m.version in applied:
            log.debug("migration already applied version=%s file=%s", m.version, m.name)
            continue
        log.info("applying migration version=%s file=%s", m.version, m.name)
        try:
            with engine.begin() as conn:
                conn.execute(text(m.sql))
                conn.execute(
                    text("INSERT INTO schema_migrations(version, applied_at) VALUES (:version, :applied_at)"),
                    {"version": m.version, "applied_at": datetime.now(timezone.utc).isoformat()},
                )
        except Exception as exc:
            raise MigrationError(f"applying {m.name}: {exc}") from exc
        done.append(m.version)

    if done:
        log.info("migrations applied versions=%s", done)
    else:
        log.info("schema up to date")
    return done
