from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable

import pytest

from chain_exporter.config import (
    AccountConfig,
    ChainConfig,
    ConsistencyConfig,
    ExporterConfig,
)
from chain_exporter.context import ApplicationContext, reset_application_context
from chain_exporter.metrics import get_metrics, reset_metrics_state
from chain_exporter.poller.connection_pool import reset_connection_pool_manager
from chain_exporter.poller.manager import reset_poller_manager
from chain_exporter.rpc import BlockSummary
from chain_exporter.runtime_settings import RuntimeSettings, reset_runtime_settings_cache
from chain_exporter.settings import get_settings

ALICE = "0x00000000000000000000000000000000000000a1"
BOB = "0x00000000000000000000000000000000000000b2"
TOKEN = "0x00000000000000000000000000000000000000c3"


@pytest.fixture(autouse=True)
def reset_exporter_state() -> None:
    reset_metrics_state()
    reset_application_context()
    reset_runtime_settings_cache()
    reset_connection_pool_manager()
    reset_poller_manager()
    yield
    reset_metrics_state()
    reset_application_context()
    reset_runtime_settings_cache()
    reset_connection_pool_manager()
    reset_poller_manager()


class FakeRpcClient:
    """Scriptable stand-in for `RpcClient`; values may be callables or exceptions."""

    def __init__(self, name: str = "chain", url: str = "https://rpc.example", **responses: Any) -> None:
        self.endpoint = SimpleNamespace(name=name, url=url)
        self.responses = responses
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def _respond(self, operation: str, *args: Any) -> Any:
        self.calls.append((operation, args))
        response = self.responses[operation]

        if isinstance(response, BaseException):
            raise response

        if callable(response):
            return response(*args)

        return response

    def get_balance(self, address: str) -> int:
        return self._respond("get_balance", address)

    def get_nonce(self, address: str) -> int:
        return self._respond("get_nonce", address)

    def get_block_number(self) -> int:
        return self._respond("get_block_number")

    def get_block(self, block_identifier: Any) -> BlockSummary:
        return self._respond("get_block", block_identifier)

    def call_contract(self, to: str, data: bytes) -> bytes:
        return self._respond("call_contract", to, data)


def build_exporter_config(**overrides: Any) -> ExporterConfig:
    values: dict[str, Any] = {
        "chain": ChainConfig(name="testnet", rpc_url="https://rpc.example", scrape_interval="15s"),
        "accounts": [AccountConfig(name="alice", address=ALICE)],
        "tokens": [],
        "contract_calls": [],
        "consistency": ConsistencyConfig(),
    }
    values.update(overrides)
    return ExporterConfig(**values)


def build_context(
    exporter: ExporterConfig | None = None,
    rpc_factory: Callable[[Any], Any] | None = None,
) -> ApplicationContext:
    runtime = RuntimeSettings(
        app=get_settings(),
        exporter=exporter or build_exporter_config(),
        config_path=Path("config.toml"),
    )

    return ApplicationContext(
        metrics=get_metrics(),
        runtime=runtime,
        rpc_factory=rpc_factory or (lambda endpoint: FakeRpcClient(name=endpoint.name, url=endpoint.url)),
    )
