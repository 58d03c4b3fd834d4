"""Polling package for chain metrics collectors."""

from .connection_pool import (
    ConnectionPoolManager,
    get_connection_pool_manager,
    reset_connection_pool_manager,
)
from .control import run_collector_task, run_collector_tick
from .intervals import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_POLL_INTERVAL_SECONDS,
)
from .manager import PollerManager, get_poller_manager, reset_poller_manager
from .tasks import CollectorTask, build_collector_tasks

__all__ = [
    "CollectorTask",
    "ConnectionPoolManager",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "PollerManager",
    "build_collector_tasks",
    "get_connection_pool_manager",
    "get_poller_manager",
    "reset_connection_pool_manager",
    "reset_poller_manager",
    "run_collector_task",
    "run_collector_tick",
]
