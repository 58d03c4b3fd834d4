"""Structured logging: `extra` builders, a timing context manager and two formatters.

Fields passed through `extra` are rendered as ` | key=value` pairs by the text
formatter and as top-level keys by the JSON formatter.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from time import monotonic
from typing import Any, Dict, Iterator

from .config import ChainConfig, Endpoint

# Attributes every LogRecord has; anything else arrived via `extra`.
_STANDARD_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "color_message"}

LEVEL_COLORS = {
    "DEBUG": "\033[90m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
TIMESTAMP_COLOR = "\033[36m"
RESET = "\033[0m"


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def extract_log_context(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_")
    }


def build_log_extra(
    *,
    chain: ChainConfig | None = None,
    task: str | None = None,
    kind: str | None = None,
    endpoint: Endpoint | None = None,
    account_name: str | None = None,
    account_address: str | None = None,
    contract_address: str | None = None,
    elapsed: float | None = None,
    additional: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    """Collect the given identifiers into an `extra` dict, skipping the unset ones."""

    fields: Dict[str, Any] = {
        "chain": chain.name if chain is not None else None,
        "task": task,
        "kind": kind,
        "endpoint": endpoint.name if endpoint is not None else None,
        "account_name": account_name,
        "account_address": account_address,
        "contract_address": contract_address,
        "elapsed_seconds": round(elapsed, 3) if elapsed is not None else None,
    }

    extra = {key: value for key, value in fields.items() if value is not None}

    if additional:
        extra.update(additional)

    return extra


@contextmanager
def log_duration(
    logger: logging.Logger,
    message: str,
    *,
    level: int = logging.DEBUG,
    extra: Dict[str, Any] | None = None,
) -> Iterator[None]:
    """Log `message` with `elapsed_seconds` once the block exits, even on error."""

    started = monotonic()

    try:
        yield
    finally:
        logger.log(
            level,
            message,
            extra={**(extra or {}), "elapsed_seconds": round(monotonic() - started, 3)},
        )


def _render_color_message(record: logging.LogRecord) -> str | None:
    """Interpolate uvicorn's `color_message` with the record args, if present."""

    color_message = getattr(record, "color_message", None)

    if not color_message or not record.args:
        return color_message

    try:
        return color_message % record.args
    except (TypeError, ValueError):
        return color_message


def _paint(text: str, target: str, color: str) -> str:
    if not color or not target:
        return text

    return text.replace(target, f"{color}{target}{RESET}", 1)


class JsonFormatter(logging.Formatter):
    """One JSON object per line; `extra` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "color_message"):
            payload["color_message"] = _render_color_message(record)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        if record.stack_info:
            payload["stack_info"] = record.stack_info

        payload.update(extract_log_context(record))

        return json.dumps(payload, default=str)


class StructuredTextFormatter(logging.Formatter):
    """Plain text line followed by ` | key=value` pairs from `extra`."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        *,
        color_enabled: bool = True,
    ) -> None:
        super().__init__(fmt, datefmt, style)
        self.color_enabled = color_enabled

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)

        if self.color_enabled:
            line = self._colorize(line, record)

        context = extract_log_context(record)

        if context:
            line += " | " + " ".join(f"{key}={context[key]}" for key in sorted(context))

        return line

    def _colorize(self, line: str, record: logging.LogRecord) -> str:
        colored_message = _render_color_message(record)

        if colored_message:
            plain_message = record.getMessage()
            line = (
                line.replace(plain_message, colored_message, 1)
                if plain_message in line
                else f"{line} {colored_message}"
            )

        level_color = getattr(record, "levelcolor", "") or LEVEL_COLORS.get(record.levelname, "")

        line = _paint(line, self.formatTime(record, self.datefmt), TIMESTAMP_COLOR)

        return _paint(line, record.levelname, level_color)


__all__ = [
    "JsonFormatter",
    "StructuredTextFormatter",
    "build_log_extra",
    "extract_log_context",
    "get_logger",
    "log_duration",
]
