"""Async control loop for collector tasks."""

from __future__ import annotations

import asyncio
import time

from ..exceptions import DecodeError, RpcError
from ..logging import build_log_extra, get_logger, log_duration
from ..metrics import record_task_failure, record_task_success
from .tasks import CollectorTask

LOGGER = get_logger(__name__)


async def run_collector_task(task: CollectorTask) -> None:
    """Run a collector forever at its fixed interval until cancelled.

    Every tick is followed by a sleep of the interval minus the tick's elapsed
    time. Failed ticks do not change the schedule.
    """

    LOGGER.info(
        "Collecting %s every %s seconds.",
        task.name,
        task.interval_seconds,
        extra=build_log_extra(task=task.name, kind=task.kind, additional=task.log_context),
    )

    while True:
        start_time = time.monotonic()

        await run_collector_tick(task)

        elapsed = time.monotonic() - start_time
        sleep_duration = max(task.interval_seconds - elapsed, 0)

        await asyncio.sleep(sleep_duration)


async def run_collector_tick(task: CollectorTask) -> bool:
    """Execute one tick of `task` inside a worker thread.

    Returns:
        True if the tick succeeded, False otherwise.
    """

    extra = build_log_extra(task=task.name, kind=task.kind, additional=task.log_context)

    try:
        with log_duration(LOGGER, "collector_tick", extra=extra):
            await asyncio.to_thread(task.tick)
    except asyncio.CancelledError:
        LOGGER.debug("Collector task %s cancelled.", task.name, extra=extra)
        raise
    except (RpcError, DecodeError) as exc:
        LOGGER.warning(
            "Collector %s failed this tick: %s",
            task.name,
            exc,
            extra=build_log_extra(
                task=task.name,
                kind=task.kind,
                additional={**task.log_context, **exc.context},
            ),
        )
        record_task_failure(task.name, task.kind)
        return False
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception(
            "Unexpected error in collector %s.",
            task.name,
            exc_info=exc,
            extra=extra,
        )
        record_task_failure(task.name, task.kind)
        return False

    record_task_success(task.name, task.kind)

    return True


__all__ = ["run_collector_task", "run_collector_tick"]
