"""Route registration for the health and metrics apps."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .health import (
    format_metrics_payload,
    generate_health_report,
    generate_readiness_report,
)
from .metrics import get_metrics


def _task_report(status_label: str, status_code: int, tasks: list[dict[str, Any]]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": status_label, "tasks": tasks})


def register_health_routes(app: FastAPI) -> None:
    @app.get("/health", response_class=JSONResponse)
    async def health() -> JSONResponse:
        return _task_report(*generate_health_report())

    @app.get("/health/details", response_class=JSONResponse)
    async def health_details() -> JSONResponse:
        return _task_report(*generate_health_report(include_details=True))

    @app.get("/health/livez", response_class=JSONResponse)
    async def livez() -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "alive"})

    @app.get("/health/readyz", response_class=JSONResponse)
    async def readyz() -> JSONResponse:
        ready, tasks = generate_readiness_report()

        if ready:
            return _task_report("ready", status.HTTP_200_OK, tasks)

        return _task_report("not_ready", status.HTTP_503_SERVICE_UNAVAILABLE, tasks)


def register_metrics_routes(app: FastAPI) -> None:
    @app.get("/metrics", response_class=Response)
    async def metrics() -> Response:
        payload = format_metrics_payload(generate_latest(get_metrics().registry))

        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


def register_routes(app: FastAPI) -> None:
    """Serve health and metrics from one app (used by tests and single-port setups)."""

    register_health_routes(app)
    register_metrics_routes(app)


__all__ = [
    "register_health_routes",
    "register_metrics_routes",
    "register_routes",
]
