"""The environment settings and the parsed TOML file, loaded together once per process."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from .config import ChainConfig, ExporterConfig, load_exporter_config, resolve_config_path
from .settings import AppSettings, get_settings


@dataclass(slots=True)
class RuntimeSettings:
    app: AppSettings

    exporter: ExporterConfig

    config_path: Path

    @property
    def chain(self) -> ChainConfig:
        return self.exporter.chain


def load_runtime_settings(config_path: Path | None = None) -> RuntimeSettings:
    """Read the config file at `config_path`, or wherever the settings point to.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigError: If the file is invalid.
    """
    app_settings = get_settings()
    path = config_path or resolve_config_path(app_settings)

    return RuntimeSettings(app=app_settings, exporter=load_exporter_config(path), config_path=path)


@lru_cache(maxsize=1)
def get_runtime_settings(*, config_path: Path | None = None) -> RuntimeSettings:
    return load_runtime_settings(config_path)


def reset_runtime_settings_cache() -> None:
    get_runtime_settings.cache_clear()


__all__ = [
    "RuntimeSettings",
    "get_runtime_settings",
    "load_runtime_settings",
    "reset_runtime_settings_cache",
]
