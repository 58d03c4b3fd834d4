"""Tick functions for the account, token balance and contract call collectors.

Each function performs one synchronous sample: it issues the RPC calls for a
single target, decodes the result and writes the target's own series. Any
RPC or decode failure propagates before a write happens, so the previous
sample stays in place.
"""

from __future__ import annotations

from .config import AccountConfig, ChainConfig, ContractCallConfig, TokenConfig
from .decoder import (
    NATIVE_DECIMALS,
    EncodedCall,
    decode_tail_word,
    prepare_function_call,
    scale_quantity,
)
from .exceptions import AbiEncodingError
from .logging import get_logger
from .metrics import MetricsStoreProtocol
from .models import AccountTarget, ContractCallTarget, TokenBalanceTarget
from .rpc import RpcClientProtocol

LOGGER = get_logger(__name__)

ERC20_ABI = (
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "account", "type": "address"},
        ],
        "outputs": [
            {"name": "", "type": "uint256"},
        ],
    },
)


def collect_account_balance(
    target: AccountTarget,
    rpc: RpcClientProtocol,
    metrics: MetricsStoreProtocol,
) -> None:
    """Sample native balance and nonce; neither series is written unless both reads succeed."""

    balance_wei = rpc.get_balance(target.address)
    nonce = rpc.get_nonce(target.address)

    labels = target.as_labels()

    metrics.account.balance.labels(*labels).set(scale_quantity(balance_wei, NATIVE_DECIMALS))
    metrics.account.nonce.labels(*labels).set(float(nonce))


def collect_token_balance(
    target: TokenBalanceTarget,
    call: EncodedCall,
    rpc: RpcClientProtocol,
    metrics: MetricsStoreProtocol,
) -> None:
    raw = rpc.call_contract(target.contract_address, call.data)

    metrics.account.token_balance.labels(*target.as_labels()).set(
        decode_tail_word(raw, target.decimals)
    )


def collect_contract_call(
    target: ContractCallTarget,
    call: EncodedCall,
    rpc: RpcClientProtocol,
    metrics: MetricsStoreProtocol,
) -> None:
    raw = rpc.call_contract(target.contract_address, call.data)

    metrics.contract.call_result.labels(*target.as_labels()).set(
        decode_tail_word(raw, target.output_decimals)
    )


def account_target(chain: ChainConfig, account: AccountConfig) -> AccountTarget:
    return AccountTarget(
        chain_name=chain.name,
        rpc_url=chain.rpc_url,
        name=account.name,
        address=account.address,
    )


def prepare_token_balance(
    chain: ChainConfig,
    token: TokenConfig,
    account: AccountConfig,
) -> tuple[TokenBalanceTarget, EncodedCall]:
    """Build the target for one (token, account) pair and pre-encode `balanceOf(account)`.

    Raises:
        AbiEncodingError: If the account address cannot be encoded.
    """

    target = TokenBalanceTarget(
        chain_name=chain.name,
        rpc_url=chain.rpc_url,
        symbol=token.symbol,
        contract_address=token.contract_address,
        decimals=token.decimals,
        account_name=account.name,
        account_address=account.address,
    )

    try:
        call = prepare_function_call(ERC20_ABI, [account.address])
    except AbiEncodingError as exc:
        raise AbiEncodingError(
            f"Unable to encode balanceOf for {token.symbol}/{account.name}: {exc.message}",
            config_section=f"erc20_balances.{token.symbol}.accounts",
            config_key=account.name,
            context=dict(exc.context),
        ) from exc

    return target, call


def prepare_contract_call(
    chain: ChainConfig,
    call_config: ContractCallConfig,
) -> tuple[ContractCallTarget, EncodedCall]:
    """Parse the ABI, coerce the configured arguments and pre-encode the call.

    Raises:
        AbiEncodingError: If the ABI does not declare exactly one function or an
            argument does not fit its declared type.
    """

    location = f"contract_calls.{call_config.name}"

    try:
        call = prepare_function_call(call_config.abi_definition, call_config.args)
    except AbiEncodingError as exc:
        raise AbiEncodingError(
            f"{location}: {exc.message}",
            config_section=location,
            abi_type=exc.abi_type,
            argument=exc.argument,
            context=dict(exc.context),
        ) from exc

    target = ContractCallTarget(
        chain_name=chain.name,
        rpc_url=chain.rpc_url,
        call_name=call_config.name,
        contract_name=call_config.contract_name,
        contract_address=call_config.contract_address,
        method=call.method,
        args=tuple(call_config.args),
        output_decimals=call_config.output_decimals,
    )

    LOGGER.debug(
        "Prepared contract call %s as %s.",
        call_config.name,
        call.signature,
        extra={"contract_address": call_config.contract_address, "call": call_config.name},
    )

    return target, call


__all__ = [
    "ERC20_ABI",
    "account_target",
    "collect_account_balance",
    "collect_contract_call",
    "collect_token_balance",
    "prepare_contract_call",
    "prepare_token_balance",
]
