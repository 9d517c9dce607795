"""Configuration management for the user admin console."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .database import resolve_database_path
from .models import DEFAULT_PAGE_SIZE, PAGE_SIZE_OPTIONS

DEFAULT_API_URL = "http://127.0.0.1:8000"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
DEFAULT_QUIET_PERIOD_MS = 300
DEFAULT_TIMEOUT = 10.0
DEFAULT_LOG_LEVEL = "INFO"

_ENV_KEYS: Dict[str, str] = {
    "database_path": "STAGECONTROL_DB_PATH",
    "api_url": "STAGECONTROL_API_URL",
    "host": "STAGECONTROL_HOST",
    "port": "STAGECONTROL_PORT",
    "quiet_period_ms": "STAGECONTROL_QUIET_PERIOD_MS",
    "page_size": "STAGECONTROL_PAGE_SIZE",
    "timeout": "STAGECONTROL_TIMEOUT",
    "log_level": "STAGECONTROL_LOG_LEVEL",
}


@dataclass(frozen=True)
class ConsoleSettings:
    """Resolved settings shared by the API server and the admin console."""

    database_path: Path
    api_url: str = DEFAULT_API_URL
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    quiet_period_ms: int = DEFAULT_QUIET_PERIOD_MS
    page_size: int = DEFAULT_PAGE_SIZE
    timeout: float = DEFAULT_TIMEOUT
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def quiet_period(self) -> float:
        return self.quiet_period_ms / 1000.0

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "ConsoleSettings":
        """Create :class:`ConsoleSettings` from raw dictionary data."""

        unknown = set(data) - set(_ENV_KEYS)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        raw_db_path = data.get("database_path")
        if raw_db_path:
            db_path = Path(str(raw_db_path)).expanduser()
            if not db_path.is_absolute() and base_path is not None:
                db_path = base_path / db_path
            database_path = db_path.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        page_size = int(data.get("page_size", DEFAULT_PAGE_SIZE))
        if page_size not in PAGE_SIZE_OPTIONS:
            raise ValueError(
                f"page_size must be one of {', '.join(str(size) for size in PAGE_SIZE_OPTIONS)}"
            )
        quiet_period_ms = int(data.get("quiet_period_ms", DEFAULT_QUIET_PERIOD_MS))
        if quiet_period_ms < 0:
            raise ValueError("quiet_period_ms must not be negative")

        return ConsoleSettings(
            database_path=database_path,
            api_url=str(data.get("api_url") or DEFAULT_API_URL).strip().rstrip("/"),
            host=str(data.get("host") or DEFAULT_HOST),
            port=int(data.get("port", DEFAULT_PORT)),
            quiet_period_ms=quiet_period_ms,
            page_size=page_size,
            timeout=float(data.get("timeout", DEFAULT_TIMEOUT)),
            log_level=str(data.get("log_level") or DEFAULT_LOG_LEVEL).upper(),
        )


def load_config_file(config_path: Path) -> Dict[str, object]:
    """Load raw settings from a YAML file."""

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping of settings")
    return dict(raw)


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ConsoleSettings:
    """Resolve settings from environment variables over an optional YAML file."""

    env = os.environ if environ is None else environ
    if config_path is None and env.get("STAGECONTROL_CONFIG"):
        config_path = Path(env["STAGECONTROL_CONFIG"]).expanduser()

    data: Dict[str, object] = {}
    base_path: Path | None = None
    if config_path is not None:
        data.update(load_config_file(config_path))
        base_path = config_path.resolve(strict=False).parent

    for key, env_name in _ENV_KEYS.items():
        value = env.get(env_name)
        if value is not None and value.strip():
            data[key] = value.strip()

    return ConsoleSettings.from_dict(data, base_path=base_path)


__all__ = ["ConsoleSettings", "load_config_file", "load_settings"]
