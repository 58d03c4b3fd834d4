"""Collection targets: the immutable identity each polling task writes under."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

KIND_ACCOUNT = "account"
KIND_TOKEN_BALANCE = "erc20_balance"
KIND_CONTRACT_CALL = "contract_call"
KIND_CONSISTENCY = "consistency"


@dataclass(frozen=True, slots=True)
class AccountTarget:
    """A native account whose balance and nonce are sampled."""

    kind: ClassVar[str] = KIND_ACCOUNT

    chain_name: str
    rpc_url: str
    name: str
    address: str

    @property
    def task_name(self) -> str:
        return f"{self.kind}:{self.name}"

    def as_labels(self) -> tuple[str, str, str, str]:
        return (self.chain_name, self.rpc_url, self.name, self.address)


@dataclass(frozen=True, slots=True)
class TokenBalanceTarget:
    """One account's balance of one ERC-20 token."""

    kind: ClassVar[str] = KIND_TOKEN_BALANCE

    chain_name: str
    rpc_url: str
    symbol: str
    contract_address: str
    decimals: int
    account_name: str
    account_address: str

    @property
    def task_name(self) -> str:
        return f"{self.kind}:{self.symbol}:{self.account_name}"

    def as_labels(self) -> tuple[str, str, str, str, str]:
        return (self.chain_name, self.rpc_url, self.symbol, self.account_name, self.account_address)


@dataclass(frozen=True, slots=True)
class ContractCallTarget:
    """A read-only contract method invoked with fixed arguments."""

    kind: ClassVar[str] = KIND_CONTRACT_CALL

    chain_name: str
    rpc_url: str
    call_name: str
    contract_name: str
    contract_address: str
    method: str
    args: tuple[str, ...]
    output_decimals: int = 0

    @property
    def task_name(self) -> str:
        return f"{self.kind}:{self.call_name}"

    @property
    def joined_args(self) -> str:
        return "_".join(self.args)

    def as_labels(self) -> tuple[str, str, str, str, str, str]:
        return (
            self.chain_name,
            self.rpc_url,
            self.contract_name,
            self.contract_address,
            self.method,
            self.joined_args,
        )


@dataclass(frozen=True, slots=True)
class ReplicaTarget:
    """A replica endpoint compared against the canonical chain height."""

    chain_name: str
    name: str
    url: str

    def as_labels(self) -> tuple[str, str, str]:
        return (self.chain_name, self.name, self.url)


Target = AccountTarget | TokenBalanceTarget | ContractCallTarget


__all__ = [
    "AccountTarget",
    "ContractCallTarget",
    "KIND_ACCOUNT",
    "KIND_CONSISTENCY",
    "KIND_CONTRACT_CALL",
    "KIND_TOKEN_BALANCE",
    "ReplicaTarget",
    "Target",
    "TokenBalanceTarget",
]
