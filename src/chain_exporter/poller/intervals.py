"""Scrape interval parsing and Web3 client construction."""

from __future__ import annotations

import re

from requests import Session
from web3 import HTTPProvider, Web3

from ..config import Endpoint
from ..logging import get_logger
from ..settings import get_settings

LOGGER = get_logger(__name__)
SETTINGS = get_settings()

DEFAULT_POLL_INTERVAL = SETTINGS.poller.default_interval
DEFAULT_RPC_TIMEOUT_SECONDS = SETTINGS.poller.rpc_request_timeout_seconds

DURATION_PATTERN = re.compile(r"^\s*(?P<amount>\d+)\s*(?P<unit>[smh]?)\s*$", re.IGNORECASE)
DURATION_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600}
FALLBACK_POLL_INTERVAL_SECONDS = 15


def parse_duration_to_seconds(value: str) -> int | None:
    """Parse `N`, `Ns`, `Nm` or `Nh` (unit case-insensitive); None when malformed."""

    match = DURATION_PATTERN.match(value)

    if match is None:
        return None

    return int(match["amount"]) * DURATION_UNIT_SECONDS[match["unit"].lower()]


DEFAULT_POLL_INTERVAL_SECONDS = (
    parse_duration_to_seconds(DEFAULT_POLL_INTERVAL) or FALLBACK_POLL_INTERVAL_SECONDS
)


def determine_rpc_timeout_seconds() -> float:
    return DEFAULT_RPC_TIMEOUT_SECONDS


def determine_interval_seconds(*candidates: str | None, owner: str = "task") -> int:
    """Resolve the first configured candidate to seconds.

    Candidates are given most specific first, e.g. a contract call's own
    interval followed by the chain interval. A missing, malformed or zero
    value falls back to the process default.
    """
    raw_value = next((value for value in candidates if value), DEFAULT_POLL_INTERVAL)
    seconds = parse_duration_to_seconds(raw_value)

    if seconds:
        return seconds

    LOGGER.warning(
        "Invalid scrape interval '%s' for %s. Falling back to %s seconds.",
        raw_value,
        owner,
        DEFAULT_POLL_INTERVAL_SECONDS,
        extra={"owner": owner},
    )

    return DEFAULT_POLL_INTERVAL_SECONDS


def create_web3_client(endpoint: Endpoint, *, session: Session | None = None) -> Web3:
    """Build a Web3 client with the request timeout applied and provider retries off."""

    provider = HTTPProvider(
        endpoint.url,
        request_kwargs={"timeout": determine_rpc_timeout_seconds()},
        session=session,
        exception_retry_configuration=None,
    )

    return Web3(provider)


__all__ = [
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "DEFAULT_RPC_TIMEOUT_SECONDS",
    "create_web3_client",
    "determine_interval_seconds",
    "determine_rpc_timeout_seconds",
    "parse_duration_to_seconds",
]
