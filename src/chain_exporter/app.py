import asyncio
import logging
import logging.config
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI

from .api import register_health_routes, register_metrics_routes, register_routes
from .config import resolve_config_path
from .context import (
    ApplicationContext,
    get_application_context,
    reset_application_context,
    set_application_context,
)
from .exceptions import ConfigError, RpcError
from .logging import (
    JsonFormatter,
    StructuredTextFormatter,
    build_log_extra,
    get_logger,
)
from .metrics import MetricsStoreProtocol, set_metrics
from .poller.connection_pool import reset_connection_pool_manager
from .poller.manager import get_poller_manager
from .poller.tasks import build_collector_tasks
from .settings import AppSettings, get_settings

SETTINGS = get_settings()


LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
LOG_TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _formatter_config(settings: AppSettings) -> dict[str, Any]:
    if settings.logging.format == "json":
        return {"()": JsonFormatter, "datefmt": LOG_DATE_FORMAT}

    return {
        "()": StructuredTextFormatter,
        "format": LOG_TEXT_FORMAT,
        "datefmt": LOG_DATE_FORMAT,
        "color_enabled": settings.logging.color_enabled,
    }


def _configure_logging(settings: AppSettings) -> None:
    """Route the root logger and uvicorn's loggers through one stream handler."""

    level = settings.logging.level if settings.logging.level in logging.getLevelNamesMapping() else "INFO"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"standard": _formatter_config(settings)},
            "handlers": {"default": {"class": "logging.StreamHandler", "formatter": "standard"}},
            "root": {"level": level, "handlers": ["default"]},
            "loggers": {
                name: {"handlers": ["default"], "level": level, "propagate": False}
                for name in UVICORN_LOGGERS
            },
        }
    )


_configure_logging(SETTINGS)
LOGGER = get_logger(__name__)


APP_TITLE = "Chain Prometheus Exporter"
APP_DESCRIPTION = "Exposes Prometheus metrics sampled from blockchain JSON-RPC endpoints."


def log_current_block(context: ApplicationContext) -> int | None:
    """Log the chain's current block height; an unreachable endpoint is only a warning."""

    chain = context.exporter_config.chain

    try:
        block_number = context.create_rpc_client(chain.endpoint).get_block_number()
    except RpcError as exc:
        LOGGER.warning(
            "Unable to read the current block for %s at startup: %s",
            chain.name,
            exc,
            extra=build_log_extra(chain=chain),
        )
        return None

    LOGGER.info(
        "Current block for %s is %s.",
        chain.name,
        block_number,
        extra=build_log_extra(chain=chain, additional={"block_number": block_number}),
    )

    return block_number


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build collector tasks on startup and cancel them on shutdown.

    The health and metrics apps share this lifespan; only the first app to
    start builds and owns the tasks.
    """

    try:
        context = get_application_context()
    except FileNotFoundError:
        config_path = resolve_config_path(SETTINGS)
        LOGGER.error(
            "Configuration file not found at %s.",
            config_path,
            extra=build_log_extra(additional={"config_path": str(config_path)}),
        )
        raise
    except ConfigError as exc:
        LOGGER.error("Configuration validation error: %s", exc, extra=exc.context)
        raise

    manager = get_poller_manager()
    app.state.context = context
    app.state.collector_tasks = []

    if not manager.tasks_created:
        try:
            collectors = build_collector_tasks(context.exporter_config, context)
        except ConfigError as exc:
            LOGGER.error("Collector construction failed: %s", exc, extra=exc.context)
            raise

        await asyncio.to_thread(log_current_block, context)

        context.metrics.exporter.up.set(1)
        app.state.collector_tasks = manager.create_tasks(collectors, app)

    try:
        yield
    finally:
        if manager.should_cleanup(app):
            context.metrics.exporter.up.set(0)

            await manager.shutdown_tasks(timeout_seconds=SETTINGS.poller.shutdown_timeout_seconds)

            app.state.collector_tasks = []
            manager.reset()

            reset_application_context()
            app.state.context = None

            reset_connection_pool_manager()


def _apply_overrides(
    metrics: MetricsStoreProtocol | None,
    context: ApplicationContext | None,
) -> None:
    if metrics is not None:
        set_metrics(metrics)
        reset_application_context()

    if context is not None:
        set_application_context(context)


def create_app(
    *,
    metrics: MetricsStoreProtocol | None = None,
    context: ApplicationContext | None = None,
) -> FastAPI:
    """Create a single FastAPI instance serving both health and metrics routes."""

    _apply_overrides(metrics, context)

    app = FastAPI(title=APP_TITLE, description=APP_DESCRIPTION, lifespan=_lifespan)

    register_routes(app)

    return app


def create_health_app(
    *,
    metrics: MetricsStoreProtocol | None = None,
    context: ApplicationContext | None = None,
) -> FastAPI:
    """Create the health app (HEALTH_PORT, default 8080)."""

    _apply_overrides(metrics, context)

    app = FastAPI(
        title=f"{APP_TITLE} - Health",
        description="Health check endpoints for the chain exporter.",
        lifespan=_lifespan,
    )

    register_health_routes(app)

    return app


def create_metrics_app(
    *,
    metrics: MetricsStoreProtocol | None = None,
    context: ApplicationContext | None = None,
) -> FastAPI:
    """Create the metrics app (METRICS_PORT, default 9060).

    Shares the lifespan with the health app; whichever starts second reuses
    the tasks the first one created.
    """

    _apply_overrides(metrics, context)

    app = FastAPI(
        title=f"{APP_TITLE} - Metrics",
        description="Prometheus metrics endpoint for the chain exporter.",
        lifespan=_lifespan,
    )

    register_metrics_routes(app)

    return app
