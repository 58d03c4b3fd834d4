from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests
from hexbytes import HexBytes
from web3.datastructures import AttributeDict
from web3.exceptions import BlockNotFound, Web3RPCError

from chain_exporter.config import Endpoint
from chain_exporter.exceptions import (
    DecodeError,
    RpcConnectionError,
    RpcError,
    RpcProtocolError,
    RpcTimeoutError,
)
from chain_exporter.metrics import get_metrics
from chain_exporter.rpc import (
    BlockSummary,
    RpcClient,
    RpcClientProtocol,
    _categorize_error,
    _extract_rpc_error_details,
    execute_rpc_call,
    summarize_block,
)

ENDPOINT = Endpoint(name="testnet", url="https://rpc.example")
ADDRESS = "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed"
CHECKSUMMED = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


def _client(web3: MagicMock | None = None) -> tuple[RpcClient, MagicMock]:
    web3 = web3 or MagicMock()
    return RpcClient(web3, ENDPOINT), web3


def _sample(name: str, labels: dict[str, str]) -> float | None:
    return get_metrics().registry.get_sample_value(name, labels)


def test_rpc_client_satisfies_protocol() -> None:
    client, _ = _client()

    assert isinstance(client, RpcClientProtocol)
    assert client.endpoint == ENDPOINT


def test_get_balance_uses_checksum_address() -> None:
    client, web3 = _client()
    web3.eth.get_balance.return_value = 10**18

    assert client.get_balance(ADDRESS) == 10**18
    web3.eth.get_balance.assert_called_once_with(CHECKSUMMED)
    assert _sample(
        "chain_exporter_rpc_call_duration_seconds_count",
        {"endpoint": "testnet", "operation": "get_balance"},
    ) == 1


def test_get_nonce_reads_transaction_count() -> None:
    client, web3 = _client()
    web3.eth.get_transaction_count.return_value = 7

    assert client.get_nonce(ADDRESS) == 7
    web3.eth.get_transaction_count.assert_called_once_with(CHECKSUMMED)


def test_get_block_number() -> None:
    client, web3 = _client()
    web3.eth.block_number = 12345

    assert client.get_block_number() == 12345


def test_get_block_returns_summary() -> None:
    client, web3 = _client()
    web3.eth.get_block.return_value = AttributeDict(
        {
            "number": 100,
            "hash": HexBytes("0x" + "11" * 32),
            "stateRoot": HexBytes("0x" + "22" * 32),
        }
    )

    summary = client.get_block(100)

    assert summary == BlockSummary(number=100, hash="0x" + "11" * 32, state_root="0x" + "22" * 32)
    web3.eth.get_block.assert_called_once_with(100)


def test_call_contract_returns_bytes() -> None:
    client, web3 = _client()
    web3.eth.call.return_value = HexBytes("0x" + "00" * 31 + "64")

    result = client.call_contract(ADDRESS, b"\x70\xa0\x82\x31")

    assert result == bytes.fromhex("00" * 31 + "64")
    transaction = web3.eth.call.call_args.args[0]
    assert transaction == {"to": CHECKSUMMED, "data": "0x70a08231"}


def test_summarize_block_requires_fields() -> None:
    with pytest.raises(DecodeError):
        summarize_block({"number": 1, "hash": "0x01"})


@pytest.mark.parametrize(
    ("exception", "expected_type", "category"),
    [
        (requests.exceptions.ReadTimeout("read timed out"), RpcTimeoutError, "timeout"),
        (requests.exceptions.ConnectionError("refused"), RpcConnectionError, "connection_error"),
        (Web3RPCError("execution reverted"), RpcProtocolError, "rpc_error"),
        (BlockNotFound("Block with id: '0x5' not found."), RpcProtocolError, "rpc_error"),
        (KeyError("result"), RpcError, "value_error"),
    ],
)
def test_failures_are_wrapped_and_counted(
    exception: Exception,
    expected_type: type[RpcError],
    category: str,
) -> None:
    client, web3 = _client()
    web3.eth.get_balance.side_effect = exception

    with pytest.raises(expected_type) as exc_info:
        client.get_balance(ADDRESS)

    wrapped = exc_info.value
    assert wrapped.__cause__ is exception
    assert wrapped.endpoint == "testnet"
    assert wrapped.rpc_url == "https://rpc.example"
    assert wrapped.operation == "get_balance"
    assert _sample(
        "chain_exporter_rpc_errors_total",
        {"endpoint": "testnet", "operation": "get_balance", "error_type": category},
    ) == 1


def test_execute_rpc_call_does_not_retry() -> None:
    operation = MagicMock(side_effect=requests.exceptions.ConnectionError("down"))

    with pytest.raises(RpcConnectionError):
        execute_rpc_call(operation, "eth_blockNumber", ENDPOINT, operation_type="get_block_number")

    assert operation.call_count == 1


def test_execute_rpc_call_reraises_rpc_errors_unchanged() -> None:
    original = RpcTimeoutError("slow", endpoint="testnet")
    operation = MagicMock(side_effect=original)

    with pytest.raises(RpcTimeoutError) as exc_info:
        execute_rpc_call(operation, "eth_call", ENDPOINT, operation_type="call_contract")

    assert exc_info.value is original


def test_extract_rpc_error_details_from_response() -> None:
    class _Failure(Exception):
        rpc_response = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "header not found"}}

    assert _extract_rpc_error_details(_Failure("boom")) == (-32000, "header not found")


def test_extract_rpc_error_details_from_args() -> None:
    exception = ValueError({"code": 3, "message": "execution reverted"})

    assert _extract_rpc_error_details(exception) == (3, "execution reverted")


def test_categorize_generic_os_error() -> None:
    assert _categorize_error(OSError("connection reset by peer")) == "connection_error"
    assert _categorize_error(RuntimeError("mystery")) == "unknown"
    assert _categorize_error(DecodeError("short")) == "decode_error"
