from __future__ import annotations

import asyncio
import signal
from typing import Any

import pytest
import uvicorn

import chain_exporter.main as main_module


def test_run_servers_starts_health_and_metrics_servers(monkeypatch: pytest.MonkeyPatch) -> None:
    captured_configs: list[uvicorn.Config] = []

    async def _fake_serve(self: Any) -> None:
        return

    original_server_init = uvicorn.Server.__init__

    def _capturing_server_init(self: Any, config: uvicorn.Config) -> None:
        captured_configs.append(config)
        original_server_init(self, config)

    monkeypatch.setattr(uvicorn.Server, "__init__", _capturing_server_init)
    monkeypatch.setattr(uvicorn.Server, "serve", _fake_serve)

    asyncio.run(asyncio.wait_for(main_module.run_servers(), timeout=1))

    ports = sorted(config.port for config in captured_configs)

    assert ports == sorted(
        [main_module.SETTINGS.server.health_port, main_module.SETTINGS.server.metrics_port]
    )
    assert all(config.host == "0.0.0.0" for config in captured_configs)
    assert all(config.log_config is None for config in captured_configs)


def test_run_registers_signal_handlers_and_exits_cleanly(monkeypatch: pytest.MonkeyPatch) -> None:
    handlers: dict[int, Any] = {}

    monkeypatch.setattr(signal, "signal", lambda signum, handler: handlers.setdefault(signum, handler))

    def _interrupted(coroutine: Any) -> None:
        coroutine.close()
        handlers[signal.SIGTERM](signal.SIGTERM, None)

    monkeypatch.setattr(main_module.asyncio, "run", _interrupted)

    with pytest.raises(SystemExit) as exc_info:
        main_module.run()

    assert exc_info.value.code == 0
    assert set(handlers) == {signal.SIGTERM, signal.SIGINT}
