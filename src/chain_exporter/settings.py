"""Process settings read from environment variables and an optional `.env` file."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Callable, TypeVar

from dotenv import load_dotenv

T = TypeVar("T")

TRUTHY_VALUES = frozenset({"1", "true", "yes", "on"})
FALSY_VALUES = frozenset({"0", "false", "no", "off"})

DEFAULT_CONFIG_FILENAME = "config.toml"
DEFAULT_ENV_FILENAME = ".env"


def load_env_file(path: Path | None = None) -> bool:
    """Load `.env` (from the working directory by default) without overriding set variables."""

    return load_dotenv(path or Path.cwd().joinpath(DEFAULT_ENV_FILENAME))


load_env_file()


def _parse_bool(raw: str) -> bool:
    normalized = raw.strip().lower()

    if normalized in TRUTHY_VALUES:
        return True

    if normalized in FALSY_VALUES:
        return False

    raise ValueError(raw)


def _env(name: str, default: T, parse: Callable[[str], T]) -> T:
    """Read `name` from the environment, keeping `default` when unset or unparsable."""

    raw = os.getenv(name)

    if raw is None:
        return default

    try:
        return parse(raw)
    except ValueError:
        return default


@dataclass(slots=True)
class LoggingSettings:
    level: str
    format: str
    color_enabled: bool


@dataclass(slots=True)
class PollerSettings:
    default_interval: str
    rpc_request_timeout_seconds: float
    # Abort startup when any collector cannot be built; otherwise skip and mark it broken.
    strict_task_construction: bool
    shutdown_timeout_seconds: float


@dataclass(slots=True)
class HealthSettings:
    readiness_stale_threshold_seconds: int


@dataclass(slots=True)
class ServerSettings:
    health_port: int
    metrics_port: int


@dataclass(slots=True)
class ConfigSettings:
    config_path_env: str | None
    default_config_filename: str

    def resolve_config_path(self) -> Path:
        """Resolve CHAIN_EXPORTER_CONFIG_PATH (a file or a directory) or fall back to ./config.toml."""

        if not self.config_path_env:
            return Path.cwd().joinpath(self.default_config_filename).resolve()

        candidate = Path(self.config_path_env).expanduser().resolve()

        return candidate.joinpath(self.default_config_filename) if candidate.is_dir() else candidate


@dataclass(slots=True)
class AppSettings:
    logging: LoggingSettings
    poller: PollerSettings
    health: HealthSettings
    server: ServerSettings
    config: ConfigSettings


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings(
        logging=LoggingSettings(
            level=_env("LOG_LEVEL", "INFO", str.upper),
            format=_env("LOG_FORMAT", "text", str.lower),
            color_enabled=_env("LOG_COLOR_ENABLED", True, _parse_bool),
        ),
        poller=PollerSettings(
            default_interval=_env("POLL_DEFAULT_INTERVAL", "15s", str.strip),
            rpc_request_timeout_seconds=_env("RPC_REQUEST_TIMEOUT_SECONDS", 10.0, float),
            strict_task_construction=_env("STRICT_TASK_CONSTRUCTION", True, _parse_bool),
            shutdown_timeout_seconds=_env("SHUTDOWN_TIMEOUT_SECONDS", 2.0, float),
        ),
        health=HealthSettings(
            readiness_stale_threshold_seconds=_env("READINESS_STALE_THRESHOLD_SECONDS", 300, int),
        ),
        server=ServerSettings(
            health_port=_env("HEALTH_PORT", 8080, int),
            metrics_port=_env("METRICS_PORT", 9060, int),
        ),
        config=ConfigSettings(
            config_path_env=os.getenv("CHAIN_EXPORTER_CONFIG_PATH"),
            default_config_filename=DEFAULT_CONFIG_FILENAME,
        ),
    )


__all__ = ["AppSettings", "get_settings", "load_env_file"]
