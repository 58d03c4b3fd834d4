"""Shared HTTP sessions so per-task Web3 clients reuse connections to the same URL."""

from __future__ import annotations

import threading

import requests
from requests.adapters import HTTPAdapter
from web3 import Web3

from ..config import Endpoint
from ..logging import get_logger
from .intervals import create_web3_client

LOGGER = get_logger(__name__)

# Default connection pool size per RPC endpoint
DEFAULT_POOL_SIZE = 10


class ConnectionPoolManager:
    """Hands out one `requests.Session` per RPC URL.

    Every polling task still owns its own `Web3` client; only the underlying
    HTTP connection pool is shared. Thread-safe.
    """

    def __init__(self, pool_size: int = DEFAULT_POOL_SIZE) -> None:
        self._pool_size = pool_size
        self._lock = threading.Lock()
        self._sessions: dict[str, requests.Session] = {}
        self._client_counts: dict[str, int] = {}

    def create_client(self, endpoint: Endpoint) -> Web3:
        """Create a new Web3 client for the endpoint on the URL's shared session."""

        with self._lock:
            session = self._get_session(endpoint.url)
            self._client_counts[endpoint.url] = self._client_counts.get(endpoint.url, 0) + 1
            count = self._client_counts[endpoint.url]

        LOGGER.debug(
            "Created Web3 client for %s (clients on this URL: %d)",
            endpoint.name,
            count,
            extra={"endpoint": endpoint.name},
        )

        return create_web3_client(endpoint, session=session)

    def _get_session(self, rpc_url: str) -> requests.Session:
        if rpc_url not in self._sessions:
            session = requests.Session()
            adapter = HTTPAdapter(
                pool_connections=self._pool_size,
                pool_maxsize=self._pool_size,
                max_retries=0,
            )
            session.mount("http://", adapter)
            session.mount("https://", adapter)
            self._sessions[rpc_url] = session

        return self._sessions[rpc_url]

    def close(self) -> None:
        """Close every shared session."""

        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._client_counts.clear()

        for session in sessions:
            session.close()

        LOGGER.debug("Closed %d shared HTTP session(s)", len(sessions))

    def get_pool_stats(self) -> dict[str, int]:
        """Return the number of clients created per RPC URL."""

        with self._lock:
            return dict(self._client_counts)


_GLOBAL_POOL_MANAGER: ConnectionPoolManager | None = None
_POOL_MANAGER_LOCK = threading.Lock()


def get_connection_pool_manager() -> ConnectionPoolManager:
    global _GLOBAL_POOL_MANAGER

    with _POOL_MANAGER_LOCK:
        if _GLOBAL_POOL_MANAGER is None:
            _GLOBAL_POOL_MANAGER = ConnectionPoolManager()

        return _GLOBAL_POOL_MANAGER


def reset_connection_pool_manager() -> None:
    """Close all shared sessions and drop the global manager."""

    global _GLOBAL_POOL_MANAGER

    with _POOL_MANAGER_LOCK:
        manager = _GLOBAL_POOL_MANAGER
        _GLOBAL_POOL_MANAGER = None

    if manager is not None:
        manager.close()


__all__ = [
    "ConnectionPoolManager",
    "DEFAULT_POOL_SIZE",
    "get_connection_pool_manager",
    "reset_connection_pool_manager",
]
