"""Thin JSON-RPC client adapter around web3 with error wrapping and call metrics."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Literal, Mapping, Protocol, runtime_checkable

import requests
from web3 import Web3
from web3.exceptions import BlockNotFound, Web3RPCError

from .config import Endpoint
from .exceptions import (
    DecodeError,
    RpcConnectionError,
    RpcError,
    RpcProtocolError,
    RpcTimeoutError,
)
from .logging import get_logger
from .metrics import record_rpc_call_duration, record_rpc_error

LOGGER = get_logger(__name__)

BlockIdentifier = int | Literal["latest", "pending", "earliest", "finalized", "safe"]

CONNECTION_ERROR_KEYWORDS = (
    "connection refused",
    "network unreachable",
    "name resolution",
    "name or service not known",
    "connection aborted",
    "connection reset",
)


@dataclass(frozen=True, slots=True)
class BlockSummary:
    """The subset of an `eth_getBlockByNumber` result the exporter relies on."""

    number: int
    hash: str
    state_root: str


def _categorize_error(exception: BaseException) -> str:
    """Categorize an exception into an error type for metrics.

    Returns:
        One of "timeout", "connection_error", "rpc_error", "decode_error",
        "value_error" or "unknown".
    """
    if isinstance(exception, RpcTimeoutError):
        return "timeout"
    if isinstance(exception, RpcConnectionError):
        return "connection_error"
    if isinstance(exception, RpcProtocolError):
        return "rpc_error"
    if isinstance(exception, RpcError):
        return "rpc_error"
    if isinstance(exception, DecodeError):
        return "decode_error"

    if isinstance(exception, requests.exceptions.Timeout):
        return "timeout"
    if isinstance(exception, requests.exceptions.ConnectionError):
        return "connection_error"
    if isinstance(exception, (Web3RPCError, BlockNotFound)):
        return "rpc_error"

    exception_type = type(exception).__name__.lower()
    exception_str = str(exception).lower()

    if "timeout" in exception_type or "timed out" in exception_str:
        return "timeout"

    if isinstance(exception, (OSError, ConnectionError)):
        if "connection" in exception_type or any(
            keyword in exception_str for keyword in CONNECTION_ERROR_KEYWORDS
        ):
            return "connection_error"

    if isinstance(exception, (ValueError, TypeError, AttributeError, KeyError)):
        return "value_error"

    return "unknown"


def _extract_rpc_error_details(exception: BaseException) -> tuple[int | None, str | None]:
    """Pull the JSON-RPC error code and message out of a web3 exception, if present."""

    payload: Any = None
    rpc_response = getattr(exception, "rpc_response", None)

    if isinstance(rpc_response, Mapping):
        payload = rpc_response.get("error")
    elif exception.args and isinstance(exception.args[0], Mapping):
        payload = exception.args[0]

    if not isinstance(payload, Mapping):
        return None, None

    code = payload.get("code")
    message = payload.get("message")

    return (code if isinstance(code, int) else None), (str(message) if message else None)


def _wrap_rpc_exception(
    exception: Exception,
    endpoint: Endpoint,
    operation: str,
    description: str,
) -> RpcError:
    """Wrap an exception in an appropriate RpcError subclass."""

    if isinstance(exception, RpcError):
        return exception

    error_type = _categorize_error(exception)
    error_message = f"RPC operation '{description}' failed: {exception}"
    common: dict[str, Any] = {
        "endpoint": endpoint.name,
        "rpc_url": endpoint.url,
        "operation": operation,
        "context": {"original_exception": type(exception).__name__},
    }

    if error_type == "timeout":
        return RpcTimeoutError(error_message, **common)

    if error_type == "connection_error":
        return RpcConnectionError(error_message, **common)

    if error_type == "rpc_error":
        rpc_error_code, rpc_error_message = _extract_rpc_error_details(exception)

        return RpcProtocolError(
            error_message,
            rpc_error_code=rpc_error_code,
            rpc_error_message=rpc_error_message,
            **common,
        )

    common["context"]["error_type"] = error_type

    return RpcError(error_message, **common)


def execute_rpc_call(
    operation: Callable[[], Any],
    description: str,
    endpoint: Endpoint,
    *,
    operation_type: str,
    context_extra: dict[str, Any] | None = None,
) -> Any:
    """Execute a single RPC operation, recording its duration or its failure.

    There is no retry: a failed call surfaces immediately and the caller's
    next scheduled tick is the retry.

    Raises:
        RpcError: The original failure wrapped in the matching subclass.
    """
    start_time = time.perf_counter()

    try:
        result = operation()
    except Exception as exc:  # noqa: BLE001
        error_type = _categorize_error(exc)

        record_rpc_error(endpoint.name, operation_type, error_type)

        LOGGER.debug(
            "RPC operation '%s' failed against %s (%s).",
            description,
            endpoint.name,
            error_type,
            extra=context_extra or {},
        )

        wrapped = _wrap_rpc_exception(exc, endpoint, operation_type, description)

        if wrapped is exc:
            raise

        raise wrapped from exc

    record_rpc_call_duration(endpoint.name, operation_type, time.perf_counter() - start_time)

    return result


def _block_field(block: Any, key: str) -> Any:
    if isinstance(block, Mapping):
        return block.get(key)

    return getattr(block, key, None)


def _to_hex(value: Any) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else f"0x{value}"

    return Web3.to_hex(value)


def summarize_block(block: Any) -> BlockSummary:
    """Convert a web3 block object into a `BlockSummary`.

    Raises:
        DecodeError: If the block lacks a number, hash or state root.
    """
    number = _block_field(block, "number")
    block_hash = _block_field(block, "hash")
    state_root = _block_field(block, "stateRoot")

    if number is None or block_hash is None or state_root is None:
        raise DecodeError(
            "Block is missing its number, hash or stateRoot.",
            context={"number": number},
        )

    return BlockSummary(number=int(number), hash=_to_hex(block_hash), state_root=_to_hex(state_root))


@runtime_checkable
class RpcClientProtocol(Protocol):
    @property
    def endpoint(self) -> Endpoint: ...

    def get_balance(self, address: str) -> int: ...

    def get_nonce(self, address: str) -> int: ...

    def get_block(self, block_identifier: BlockIdentifier) -> BlockSummary: ...

    def get_block_number(self) -> int: ...

    def call_contract(self, to: str, data: bytes) -> bytes: ...


class RpcClient:
    """Per-task wrapper around a `Web3` instance bound to one endpoint."""

    def __init__(self, web3: Web3, endpoint: Endpoint) -> None:
        self._web3 = web3
        self._endpoint = endpoint

    @property
    def web3(self) -> Web3:
        return self._web3

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    def get_balance(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)
        return execute_rpc_call(
            lambda: self._web3.eth.get_balance(checksum),
            f"eth_getBalance({address})",
            self._endpoint,
            operation_type="get_balance",
        )

    def get_nonce(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)
        return execute_rpc_call(
            lambda: self._web3.eth.get_transaction_count(checksum),
            f"eth_getTransactionCount({address})",
            self._endpoint,
            operation_type="get_nonce",
        )

    def get_block_number(self) -> int:
        return execute_rpc_call(
            lambda: self._web3.eth.block_number,
            "eth_blockNumber",
            self._endpoint,
            operation_type="get_block_number",
        )

    def get_block(self, block_identifier: BlockIdentifier) -> BlockSummary:
        block = execute_rpc_call(
            lambda: self._web3.eth.get_block(block_identifier),
            f"eth_getBlockByNumber({block_identifier!r})",
            self._endpoint,
            operation_type="get_block",
        )

        return summarize_block(block)

    def call_contract(self, to: str, data: bytes) -> bytes:
        transaction = {"to": Web3.to_checksum_address(to), "data": Web3.to_hex(data)}
        result = execute_rpc_call(
            lambda: self._web3.eth.call(transaction),
            f"eth_call({to})",
            self._endpoint,
            operation_type="call_contract",
        )

        return bytes(result)


__all__ = [
    "BlockIdentifier",
    "BlockSummary",
    "RpcClient",
    "RpcClientProtocol",
    "_categorize_error",
    "_wrap_rpc_exception",
    "execute_rpc_call",
    "summarize_block",
]
