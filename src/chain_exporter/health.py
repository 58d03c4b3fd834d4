"""Health reporting and metrics formatting helpers."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Tuple

from fastapi import status

from .metrics import BROKEN_TASKS, CONFIGURED_TASKS, TASK_HEALTH_STATUS, TASK_LAST_SUCCESS
from .settings import get_settings

SETTINGS = get_settings()
READINESS_STALE_THRESHOLD_SECONDS = SETTINGS.health.readiness_stale_threshold_seconds


def _format_timestamp(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _task_status(task_name: str) -> str:
    if task_name in BROKEN_TASKS:
        return "broken"

    healthy = TASK_HEALTH_STATUS.get(task_name)

    if healthy is None:
        return "pending"

    return "ok" if healthy else "unhealthy"


def generate_health_report(
    include_details: bool = False,
) -> Tuple[str, int, List[Dict[str, str]]]:
    """Summarise collector health.

    Overall status is "ok" when every reporting task last succeeded, "degraded"
    when some did, "unhealthy" when none did, and "initializing" before any
    task has reported.
    """
    if not CONFIGURED_TASKS:
        return "ok", status.HTTP_200_OK, []

    if not TASK_HEALTH_STATUS:
        return "initializing", status.HTTP_503_SERVICE_UNAVAILABLE, []

    any_success = any(TASK_HEALTH_STATUS.values())
    all_success = all(TASK_HEALTH_STATUS.values())

    if all_success:
        overall_status = "ok"
        status_code = status.HTTP_200_OK
    elif any_success:
        overall_status = "degraded"
        status_code = status.HTTP_200_OK
    else:
        overall_status = "unhealthy"
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    task_details: List[Dict[str, str]] = []

    for task_name, kind in sorted(CONFIGURED_TASKS.items()):
        entry: Dict[str, str] = {
            "task": task_name,
            "kind": kind,
            "status": _task_status(task_name),
        }

        if include_details:
            last_success = TASK_LAST_SUCCESS.get(task_name)

            if last_success is not None:
                entry["last_success_timestamp"] = _format_timestamp(last_success)

            if task_name in BROKEN_TASKS:
                entry["reason"] = BROKEN_TASKS[task_name]

        task_details.append(entry)

    return overall_status, status_code, task_details


def generate_readiness_report() -> Tuple[bool, List[Dict[str, str]]]:
    """Ready once at least one task has succeeded within the stale threshold."""

    if not CONFIGURED_TASKS:
        return True, []

    if not TASK_HEALTH_STATUS:
        return False, []

    threshold = time.time() - READINESS_STALE_THRESHOLD_SECONDS

    any_ready = False
    task_entries: List[Dict[str, str]] = []

    for task_name, healthy in sorted(TASK_HEALTH_STATUS.items()):
        last_success = TASK_LAST_SUCCESS.get(task_name)

        is_recent = last_success is not None and last_success >= threshold
        ready = healthy and is_recent

        if ready:
            any_ready = True

        entry: Dict[str, str] = {
            "task": task_name,
            "status": "ready" if ready else "not_ready",
        }

        if last_success is not None:
            entry["last_success_timestamp"] = _format_timestamp(last_success)

        task_entries.append(entry)

    return any_ready, task_entries


def format_metrics_payload(payload: bytes) -> bytes:
    """Rewrite sample values printed in scientific notation as plain decimals."""

    lines = []

    for line in payload.decode().splitlines():
        if not line or line.startswith("#"):
            lines.append(line)
            continue

        parts = line.rsplit(" ", 1)

        if len(parts) != 2:
            lines.append(line)
            continue

        metric, value = parts

        if "e" in value.lower():
            try:
                value = format(Decimal(value), "f")
            except InvalidOperation:
                pass

        lines.append(f"{metric} {value}")

    return "\n".join(lines).encode()


__all__ = [
    "format_metrics_payload",
    "generate_health_report",
    "generate_readiness_report",
    "READINESS_STALE_THRESHOLD_SECONDS",
]
