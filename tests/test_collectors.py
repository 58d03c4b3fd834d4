from __future__ import annotations

import json

import pytest
from conftest import ALICE, TOKEN, FakeRpcClient
from eth_utils import function_abi_to_4byte_selector

from chain_exporter.collectors import (
    ERC20_ABI,
    account_target,
    collect_account_balance,
    collect_contract_call,
    collect_token_balance,
    prepare_contract_call,
    prepare_token_balance,
)
from chain_exporter.config import AccountConfig, ChainConfig, ContractCallConfig, TokenConfig
from chain_exporter.exceptions import AbiEncodingError, DecodeError, RpcTimeoutError
from chain_exporter.metrics import get_metrics

CHAIN = ChainConfig(name="testnet", rpc_url="https://rpc.example")
ACCOUNT = AccountConfig(name="alice", address=ALICE)

ACCOUNT_SERIES = {
    "chain_name": "testnet",
    "rpc_url": "https://rpc.example",
    "account_name": "alice",
    "account_address": ALICE,
}

BALANCE_OF_SELECTOR = bytes(function_abi_to_4byte_selector(ERC20_ABI[0]))

PRICE_ABI = json.dumps(
    [
        {
            "type": "function",
            "name": "priceOf",
            "stateMutability": "view",
            "inputs": [{"name": "asset", "type": "address"}, {"name": "decimals", "type": "uint8"}],
            "outputs": [{"name": "", "type": "uint256"}],
        }
    ]
)


def _sample(name: str, labels: dict[str, str]) -> float | None:
    return get_metrics().registry.get_sample_value(name, labels)


def _call_config(**overrides: object) -> ContractCallConfig:
    values: dict[str, object] = {
        "name": "oracle",
        "contract_name": "PriceOracle",
        "contract_address": TOKEN,
        "abi_definition": PRICE_ABI,
        "args": [ALICE, "8"],
        "output_decimals": 2,
    }
    values.update(overrides)
    return ContractCallConfig(**values)


def test_collect_account_balance_writes_both_series() -> None:
    rpc = FakeRpcClient(get_balance=10**18, get_nonce=5)

    collect_account_balance(account_target(CHAIN, ACCOUNT), rpc, get_metrics())

    assert _sample("chain_accountbalance", ACCOUNT_SERIES) == 1.0
    assert _sample("chain_account_nounce", ACCOUNT_SERIES) == 5.0


def test_account_balance_failure_keeps_previous_sample() -> None:
    target = account_target(CHAIN, ACCOUNT)

    collect_account_balance(target, FakeRpcClient(get_balance=2 * 10**18, get_nonce=1), get_metrics())

    failing = FakeRpcClient(get_balance=3 * 10**18, get_nonce=RpcTimeoutError("slow"))

    with pytest.raises(RpcTimeoutError):
        collect_account_balance(target, failing, get_metrics())

    assert _sample("chain_accountbalance", ACCOUNT_SERIES) == 2.0
    assert _sample("chain_account_nounce", ACCOUNT_SERIES) == 1.0


def test_prepare_token_balance_encodes_balance_of_once() -> None:
    token = TokenConfig(symbol="USDT", contract_address=TOKEN, accounts=[ACCOUNT], decimals=6)

    target, call = prepare_token_balance(CHAIN, token, ACCOUNT)

    assert target.as_labels() == ("testnet", "https://rpc.example", "USDT", "alice", ALICE)
    assert call.method == "balanceOf"
    assert call.data[:4] == BALANCE_OF_SELECTOR
    assert call.data[-20:] == bytes.fromhex(ALICE[2:])


def test_collect_token_balance_decodes_tail_word() -> None:
    token = TokenConfig(symbol="USDT", contract_address=TOKEN, accounts=[ACCOUNT], decimals=6)
    target, call = prepare_token_balance(CHAIN, token, ACCOUNT)
    rpc = FakeRpcClient(call_contract=(2_500_000).to_bytes(32, "big"))

    collect_token_balance(target, call, rpc, get_metrics())

    assert rpc.calls == [("call_contract", (TOKEN, call.data))]
    assert _sample(
        "chain_erc20balance",
        {
            "chain_name": "testnet",
            "rpc_url": "https://rpc.example",
            "symbol": "USDT",
            "account_name": "alice",
            "account_address": ALICE,
        },
    ) == 2.5


def test_collect_token_balance_short_result_is_decode_error() -> None:
    token = TokenConfig(symbol="USDT", contract_address=TOKEN, accounts=[ACCOUNT])
    target, call = prepare_token_balance(CHAIN, token, ACCOUNT)

    with pytest.raises(DecodeError):
        collect_token_balance(target, call, FakeRpcClient(call_contract=b"\x01"), get_metrics())


def test_prepare_contract_call_builds_labels() -> None:
    target, call = prepare_contract_call(CHAIN, _call_config())

    assert target.method == "priceOf"
    assert target.as_labels() == (
        "testnet",
        "https://rpc.example",
        "PriceOracle",
        TOKEN,
        "priceOf",
        f"{ALICE}_8",
    )
    assert call.arguments[1] == 8


def test_prepare_contract_call_rejects_out_of_range_argument() -> None:
    with pytest.raises(AbiEncodingError) as exc_info:
        prepare_contract_call(CHAIN, _call_config(args=[ALICE, "300"]))

    assert exc_info.value.config_section == "contract_calls.oracle"


def test_prepare_contract_call_rejects_two_functions() -> None:
    abi = json.loads(PRICE_ABI)
    abi.append(dict(abi[0], name="otherPrice"))

    with pytest.raises(AbiEncodingError):
        prepare_contract_call(CHAIN, _call_config(abi_definition=json.dumps(abi)))


def test_collect_contract_call_scales_by_output_decimals() -> None:
    target, call = prepare_contract_call(CHAIN, _call_config())
    rpc = FakeRpcClient(call_contract=(12345).to_bytes(32, "big"))

    collect_contract_call(target, call, rpc, get_metrics())

    assert _sample(
        "chain_contractdata",
        {
            "chain_name": "testnet",
            "rpc_url": "https://rpc.example",
            "contract_name": "PriceOracle",
            "contract_address": TOKEN,
            "method": "priceOf",
            "args": f"{ALICE}_8",
        },
    ) == 123.45
