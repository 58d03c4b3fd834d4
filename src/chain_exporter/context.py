"""Process-wide wiring: the metric sink, the loaded config and how RPC clients are made."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from .config import Endpoint, ExporterConfig
from .metrics import MetricsStoreProtocol, get_metrics
from .rpc import RpcClient, RpcClientProtocol
from .runtime_settings import RuntimeSettings, get_runtime_settings
from .settings import AppSettings

RpcFactory = Callable[[Endpoint], RpcClientProtocol]


@dataclass(slots=True)
class ApplicationContext:
    metrics: MetricsStoreProtocol

    runtime: RuntimeSettings

    rpc_factory: RpcFactory

    def create_rpc_client(self, endpoint: Endpoint) -> RpcClientProtocol:
        """Return a new client; collector tasks never share one."""

        return self.rpc_factory(endpoint)

    @property
    def settings(self) -> AppSettings:
        return self.runtime.app

    @property
    def exporter_config(self) -> ExporterConfig:
        return self.runtime.exporter


def default_rpc_factory(endpoint: Endpoint) -> RpcClientProtocol:
    from .poller.connection_pool import get_connection_pool_manager

    return RpcClient(get_connection_pool_manager().create_client(endpoint), endpoint)


def create_default_context() -> ApplicationContext:
    return ApplicationContext(
        metrics=get_metrics(),
        runtime=get_runtime_settings(),
        rpc_factory=default_rpc_factory,
    )


_current_context: ApplicationContext | None = None


def get_application_context() -> ApplicationContext:
    """Return the installed context, loading the default one on first use.

    Raises:
        FileNotFoundError: If no context is installed and the config file is missing.
        ConfigError: If no context is installed and the config file is invalid.
    """
    global _current_context

    if _current_context is None:
        _current_context = create_default_context()

    return _current_context


def set_application_context(context: ApplicationContext | None) -> None:
    global _current_context

    _current_context = context


def reset_application_context() -> None:
    set_application_context(None)


__all__ = [
    "ApplicationContext",
    "RpcFactory",
    "create_default_context",
    "default_rpc_factory",
    "get_application_context",
    "reset_application_context",
    "set_application_context",
]
