from __future__ import annotations
import os
import re
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
import yaml

from togglsync.errors import ConfigError

DEFAULT_BASE_URL = "https://api.track.toggl.com"

_ENV_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")


def _env_expand(value: str) -> str:
    # supports ${VAR} interpolation for YAML strings
    def repl(m):
        return os.getenv(m.group(1), "")
    return _ENV_PATTERN.sub(repl, value)


def load_config(path: str | Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    # recursively expand env vars
    def walk(obj):
        if isinstance(obj, dict):
            return {k: walk(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(x) for x in obj]
        if isinstance(obj, str):
            return _env_expand(obj)
        return obj
    return walk(cfg)


def build_db_url() -> str:
    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "togglsync")
    user = os.getenv("DB_USER", "togglsync")
    pwd = os.getenv("DB_PASSWORD", "togglsync")
    return f"postgresql+psycopg://{user}:{pwd}@{host}:{port}/{name}"


@dataclass(frozen=True)
class Settings:
    api_token: str
    workspace_id: int | None
    base_url: str
    database_url: str
    timezone: str
    http_addr: str

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def _section(cfg: dict, name: str) -> dict:
    value = cfg.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"config section '{name}' must be a mapping")
    return value


def _pick(env_key: str, yaml_value, default: str = "") -> str:
    # environment wins over the YAML file
    env_value = os.getenv(env_key)
    if env_value:
        return env_value.strip()
    if yaml_value not in (None, ""):
        return str(yaml_value).strip()
    return default


def load_settings(config_path: str | Path | None = None, env_file: str | Path | None = None) -> Settings:
    """Build validated settings from the environment, `.env` and an optional YAML file.

    Raises ConfigError for a missing token, a non-integer workspace id or an
    unknown time zone.
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()

    cfg = load_config(config_path) if config_path else {}
    toggl = _section(cfg, "toggl")
    database = _section(cfg, "database")
    sync = _section(cfg, "sync")
    http = _section(cfg, "http")

    api_token = _pick("TOGGL_API_TOKEN", toggl.get("api_token"))
    if not api_token:
        raise ConfigError("TOGGL_API_TOKEN is required")

    workspace_raw = _pick("TOGGL_WORKSPACE_ID", toggl.get("workspace_id"))
    workspace_id: int | None = None
    if workspace_raw:
        try:
            workspace_id = int(workspace_raw)
        except ValueError:
            raise ConfigError("TOGGL_WORKSPACE_ID must be an integer") from None

    base_url = _pick("TOGGL_BASE_URL", toggl.get("base_url"), DEFAULT_BASE_URL).rstrip("/")
    database_url = _pick("DATABASE_URL", database.get("url")) or build_db_url()

    tz_name = _pick("SYNC_TZ", sync.get("timezone"), "UTC")
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigError(f"invalid SYNC_TZ: {tz_name}") from None

    http_addr = _pick("HTTP_ADDR", http.get("addr"))

    return Settings(
        api_token=api_token,
        workspace_id=workspace_id,
        base_url=base_url,
        database_url=database_url,
        timezone=tz_name,
        http_addr=http_addr,
    )


def split_addr(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ConfigError(f"invalid http address {addr!r}, expected HOST:PORT")
    try:
        port_num = int(port)
    except ValueError:
        raise ConfigError(f"invalid http port in {addr!r}") from None
    return host or "0.0.0.0", port_num
