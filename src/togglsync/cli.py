"""Toggl Track -> PostgreSQL sync.

Modes (first match wins):
  --once            sync one window and exit (non-zero on failure)
  --daily           sync the previous local day after each midnight in SYNC_TZ
  --interval 15m    sync now and then every interval with a 24h lookback
  --interval 0      no timer; only syncs triggered over HTTP (needs --http-addr)

Examples:
  togglsync --once --from 2025-08-01 --to 2025-08-15
  togglsync --daily --http-addr 0.0.0.0:8085
  togglsync --interval 30m -v
"""
from __future__ import annotations
import argparse
import logging
import signal
import sys
import threading
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import uvicorn

from togglsync.api.app import create_app
from togglsync.config import Settings, load_settings, split_addr
from togglsync.db.connection import check_connection, get_engine
from togglsync.db.migrate import run_migrations
from togglsync.db.sink import PostgresSink
from togglsync.errors import ConfigError, MigrationError
from togglsync.sync.executor import SyncExecutor
from togglsync.sync.scheduler import Scheduler
from togglsync.sync.window import parse_duration, resolve_window
from togglsync.toggl.client import TogglClient
from togglsync.utils.logging import configure_logging

log = logging.getLogger("togglsync")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="togglsync",
        description="Mirror Toggl Track time entries and projects into PostgreSQL",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--once", action="store_true", help="Run a single sync and exit")
    parser.add_argument("--interval", default="15m", help="Sync interval when not running once (default: 15m)")
    parser.add_argument("--daily", action="store_true", help="Run at local midnight each day (uses SYNC_TZ, default UTC)")
    parser.add_argument("--from", dest="start", default="", help="RFC3339 or YYYY-MM-DD start (default: now - 24h)")
    parser.add_argument("--to", dest="end", default="", help="RFC3339 or YYYY-MM-DD end, dates inclusive (default: now)")
    parser.add_argument("--http-addr", default=None, help="Serve the HTTP trigger on HOST:PORT (env HTTP_ADDR)")
    parser.add_argument("--env-file", default=None, help="Path to .env file")
    parser.add_argument("--config", default=None, help="Optional YAML config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    return parser


def build_scheduler(settings: Settings) -> Scheduler:
    """Connect, migrate and wire the sync pipeline. Raises on any startup failure."""
    engine = get_engine(settings.database_url)
    check_connection(engine)
    run_migrations(engine)
    source = TogglClient(settings.api_token, settings.workspace_id, settings.base_url)
    executor = SyncExecutor(source, PostgresSink(engine))
    return Scheduler(executor)


def start_http_server(scheduler: Scheduler, addr: str) -> tuple[uvicorn.Server, threading.Thread]:
    host, port = split_addr(addr)
    config = uvicorn.Config(create_app(scheduler), host=host, port=port, log_config=None, access_log=False)
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, name="http-trigger", daemon=True)
    thread.start()
    log.info("http trigger server started addr=%s:%s", host, port)
    return server, thread


def _install_signal_handlers(stop: threading.Event) -> None:
    def handler(signum, _frame):
        log.info("received signal=%s, stopping", signal.Signals(signum).name)
        stop.set()
    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        settings = load_settings(args.config, args.env_file)
        now = datetime.now(timezone.utc)
        window = resolve_window(args.start, args.end, now, strict=True)
        try:
            interval = parse_duration(args.interval)
        except ValueError as exc:
            raise ConfigError(f"invalid --interval: {exc}") from None
        http_addr = args.http_addr if args.http_addr is not None else settings.http_addr
        if not args.once and not args.daily and interval <= timedelta(0) and not http_addr:
            raise ConfigError("--interval 0 requires --http-addr")
    except ConfigError as exc:
        log.error("failed to load config error=%s", exc)
        return 1

    try:
        scheduler = build_scheduler(settings)
    except MigrationError as exc:
        log.error("migration failed error=%s", exc)
        return 1
    except Exception as exc:
        log.error("failed to initialize app error=%s", exc)
        return 1

    if args.once:
        try:
            outcome = scheduler.run_once(window)
        except Exception as exc:
            log.error("sync failed error=%s", exc)
            return 1
        log.info("sync completed projects=%s entries=%s", outcome.projects, outcome.entries)
        return 0

    stop = threading.Event()
    _install_signal_handlers(stop)

    server = thread = None
    if http_addr:
        try:
            server, thread = start_http_server(scheduler, http_addr)
        except ConfigError as exc:
            log.error("failed to load config error=%s", exc)
            return 1

    try:
        if args.daily:
            scheduler.run_daily(settings.tzinfo, stop)
        elif interval > timedelta(0):
            scheduler.run_interval(interval, stop, first_window=window)
        else:
            log.info("on-demand mode: waiting for HTTP triggers")
            stop.wait()
            log.info("shutting down")
    finally:
        if server is not None:
            server.should_exit = True
            thread.join(timeout=10)
    return 0


if __name__ == "__main__":
    sys.exit(main())
