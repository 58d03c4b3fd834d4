"""Poller manager for coordinating collector tasks across multiple FastAPI apps."""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING

from fastapi import FastAPI

from ..logging import build_log_extra, get_logger
from ..metrics import update_active_task_count
from . import control as poller_control

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .tasks import CollectorTask

LOGGER = get_logger(__name__)


class PollerManager:
    """Registry of running collector tasks.

    The health and metrics apps share one lifespan, so task creation must be
    idempotent: the first app to start creates the tasks and is the only one
    that cleans them up.

    Attributes:
        tasks_created: Whether collector tasks have been created.
        running_tasks: The asyncio tasks driving each collector.
        primary_app: The FastAPI app instance that created the tasks.
    """

    def __init__(self) -> None:
        self.tasks_created: bool = False
        self.running_tasks: list[asyncio.Task] = []
        self.primary_app: FastAPI | None = None
        self._lock = threading.Lock()

    def create_tasks(
        self,
        collectors: Sequence[CollectorTask],
        app: FastAPI | None = None,
    ) -> list[asyncio.Task]:
        """Start one asyncio task per collector unless tasks already exist.

        Returns:
            A copy of the running task list.
        """
        with self._lock:
            if self.tasks_created:
                LOGGER.debug(
                    "Reusing existing collector tasks from another app instance",
                    extra=build_log_extra(additional={"existing_task_count": len(self.running_tasks)}),
                )
                return self.running_tasks.copy()

            self.tasks_created = True
            self.primary_app = app
            self.running_tasks = [
                asyncio.create_task(
                    poller_control.run_collector_task(collector),
                    name=collector.name,
                )
                for collector in collectors
            ]

            update_active_task_count(len(self.running_tasks))

            LOGGER.debug(
                "Created %d collector task(s)",
                len(self.running_tasks),
                extra=build_log_extra(additional={"task_count": len(self.running_tasks)}),
            )

            return self.running_tasks.copy()

    def should_cleanup(self, app: FastAPI) -> bool:
        with self._lock:
            return self.tasks_created and self.primary_app is app

    async def shutdown_tasks(self, timeout_seconds: float = 30.0) -> None:
        """Cancel every collector task and wait up to `timeout_seconds` for them to finish."""

        with self._lock:
            tasks_to_cancel = [task for task in self.running_tasks if not task.done()]
            self.running_tasks = []

        if not tasks_to_cancel:
            update_active_task_count(0)
            return

        LOGGER.debug(
            "Cancelling %d collector task(s)",
            len(tasks_to_cancel),
            extra=build_log_extra(additional={"task_count": len(tasks_to_cancel)}),
        )

        for task in tasks_to_cancel:
            task.cancel()

        try:
            await asyncio.wait_for(
                asyncio.gather(*tasks_to_cancel, return_exceptions=True),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Collector tasks did not complete within %s seconds",
                timeout_seconds,
                extra=build_log_extra(additional={"timeout_seconds": timeout_seconds}),
            )

        update_active_task_count(0)

    def get_active_task_count(self) -> int:
        with self._lock:
            return sum(1 for task in self.running_tasks if not task.done())

    def reset(self) -> None:
        """Forget all tasks without cancelling them (used by tests)."""
        with self._lock:
            self.tasks_created = False
            self.running_tasks = []
            self.primary_app = None


_poller_manager: PollerManager | None = None
_manager_lock = threading.Lock()


def get_poller_manager() -> PollerManager:
    global _poller_manager

    with _manager_lock:
        if _poller_manager is None:
            _poller_manager = PollerManager()

        return _poller_manager


def reset_poller_manager() -> None:
    with _manager_lock:
        if _poller_manager is not None:
            _poller_manager.reset()


__all__ = [
    "PollerManager",
    "get_poller_manager",
    "reset_poller_manager",
]
