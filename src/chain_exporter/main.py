import asyncio
import signal
import sys

import uvicorn
from fastapi import FastAPI

from .app import create_health_app, create_metrics_app
from .settings import get_settings

SETTINGS = get_settings()
LISTEN_HOST = "0.0.0.0"


def _build_server(app: FastAPI, port: int) -> uvicorn.Server:
    # Logging is configured by the app module; uvicorn must not replace it.
    return uvicorn.Server(uvicorn.Config(app, host=LISTEN_HOST, port=port, log_config=None))


async def run_servers() -> None:
    """Serve the health app and the metrics app side by side until cancelled."""

    servers = [
        _build_server(create_health_app(), SETTINGS.server.health_port),
        _build_server(create_metrics_app(), SETTINGS.server.metrics_port),
    ]
    serving = [asyncio.create_task(server.serve()) for server in servers]

    try:
        await asyncio.gather(*serving)
    except asyncio.CancelledError:
        for task in serving:
            task.cancel()

        await asyncio.gather(*serving, return_exceptions=True)
        raise


def _raise_interrupt(signum: int, frame: object) -> None:
    raise KeyboardInterrupt(f"Received signal {signum}")


def run() -> None:
    """Console entry point; SIGTERM and SIGINT stop both servers and every collector."""

    for signum in (signal.SIGTERM, signal.SIGINT):
        signal.signal(signum, _raise_interrupt)

    try:
        asyncio.run(run_servers())
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    run()
