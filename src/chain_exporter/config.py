from __future__ import annotations

import json
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .exceptions import ConfigError, ValidationError
from .settings import AppSettings, get_settings

DEFAULT_TOKEN_DECIMALS = 18
DEFAULT_OUTPUT_DECIMALS = 0


@dataclass(frozen=True, slots=True)
class Endpoint:
    name: str

    url: str


@dataclass(frozen=True, slots=True)
class ChainConfig:
    name: str

    rpc_url: str

    scrape_interval: str | None = None

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint(name=self.name, url=self.rpc_url)


@dataclass(frozen=True, slots=True)
class AccountConfig:
    name: str

    address: str


@dataclass(frozen=True, slots=True)
class TokenConfig:
    symbol: str

    contract_address: str

    accounts: list[AccountConfig]

    decimals: int = DEFAULT_TOKEN_DECIMALS


@dataclass(frozen=True, slots=True)
class ContractCallConfig:
    name: str

    contract_name: str

    contract_address: str

    abi_definition: str

    args: list[str]

    output_decimals: int = DEFAULT_OUTPUT_DECIMALS

    scrape_interval: str | None = None


@dataclass(frozen=True, slots=True)
class ConsistencyConfig:
    standard_rpc_endpoint: str | None = None

    replica_rpc_endpoints: list[Endpoint] = field(default_factory=list)

    backward_offset: int = 0

    @property
    def enabled(self) -> bool:
        return bool(self.standard_rpc_endpoint) and bool(self.replica_rpc_endpoints)


@dataclass(frozen=True, slots=True)
class ExporterConfig:
    chain: ChainConfig

    accounts: list[AccountConfig] = field(default_factory=list)

    tokens: list[TokenConfig] = field(default_factory=list)

    contract_calls: list[ContractCallConfig] = field(default_factory=list)

    consistency: ConsistencyConfig = field(default_factory=ConsistencyConfig)


def load_exporter_config(path: Path | None = None) -> ExporterConfig:
    config_path = path or resolve_config_path()

    data = _read_toml(config_path)

    chain_data = data.get("chain")

    if not isinstance(chain_data, dict):
        raise ConfigError(
            "Configuration must contain a [chain] table.",
            config_file=str(config_path),
            config_section="chain",
        )

    chain = _parse_chain_config(chain_data)

    accounts = _parse_account_map(data.get("balances", {}), "balances")

    tokens = _parse_tokens(data.get("erc20_balances", {}))

    contract_calls = _parse_contract_calls(data.get("contract_calls", {}))

    consistency = _parse_consistency_config(data.get("consistency", {}))

    return ExporterConfig(
        chain=chain,
        accounts=accounts,
        tokens=tokens,
        contract_calls=contract_calls,
        consistency=consistency,
    )


def resolve_config_path(settings: AppSettings | None = None) -> Path:
    resolved_settings = settings or get_settings()

    return resolved_settings.config.resolve_config_path()


def _parse_chain_config(data: dict[str, Any]) -> ChainConfig:
    name = _require_non_empty_string(data.get("name"), "chain.name")

    rpc_url = _require_non_empty_string(data.get("rpc_url"), "chain.rpc_url")

    scrape_interval = _optional_interval(data.get("scrape_interval"), "chain.scrape_interval")

    return ChainConfig(name=name, rpc_url=rpc_url, scrape_interval=scrape_interval)


def _parse_account_map(data: Any, location: str) -> list[AccountConfig]:
    """Parse a `name = "0x..."` table into account configs.

    Args:
        data: Table mapping account names to addresses.
        location: Location string for error messages (e.g., "balances").

    Returns:
        Parsed accounts in declaration order.

    Raises:
        ValidationError: If the table or any address is invalid.
    """
    _require_table(data, location)

    accounts: list[AccountConfig] = []

    for raw_name, raw_address in data.items():
        name = _require_non_empty_string(raw_name, f"{location}.<name>")

        address_str = _require_non_empty_string(raw_address, f"{location}.{name}")

        address = _validate_ethereum_address(address_str, f"{location}.{name}")

        accounts.append(AccountConfig(name=name, address=address))

    return accounts


def _parse_tokens(data: Any) -> list[TokenConfig]:
    _require_table(data, "erc20_balances")

    tokens: list[TokenConfig] = []

    for raw_symbol, entry in data.items():
        symbol = _require_non_empty_string(raw_symbol, "erc20_balances.<symbol>")
        location = f"erc20_balances.{symbol}"

        _require_table(entry, location)

        contract_address = _validate_ethereum_address(
            _require_non_empty_string(entry.get("contract_address"), f"{location}.contract_address"),
            f"{location}.contract_address",
        )

        decimals = _coerce_optional_int(
            entry.get("decimals"),
            f"{location}.decimals",
            allow_none=True,
            minimum=0,
        )

        accounts = _parse_account_map(entry.get("accounts", {}), f"{location}.accounts")

        tokens.append(
            TokenConfig(
                symbol=symbol,
                contract_address=contract_address,
                accounts=accounts,
                decimals=DEFAULT_TOKEN_DECIMALS if decimals is None else decimals,
            )
        )

    return tokens


def _parse_contract_calls(data: Any) -> list[ContractCallConfig]:
    _require_table(data, "contract_calls")

    calls: list[ContractCallConfig] = []

    for raw_name, entry in data.items():
        name = _require_non_empty_string(raw_name, "contract_calls.<name>")
        location = f"contract_calls.{name}"

        _require_table(entry, location)

        contract_address = _validate_ethereum_address(
            _require_non_empty_string(entry.get("contract_address"), f"{location}.contract_address"),
            f"{location}.contract_address",
        )

        raw_contract_name = entry.get("contract_name")

        contract_name = (
            name
            if raw_contract_name is None
            else _require_non_empty_string(raw_contract_name, f"{location}.contract_name")
        )

        abi_definition = _coerce_abi_definition(entry.get("abi_definition"), f"{location}.abi_definition")

        output_decimals = _coerce_optional_int(
            entry.get("output_decimals"),
            f"{location}.output_decimals",
            allow_none=True,
            minimum=0,
        )

        scrape_interval = _optional_interval(entry.get("scrape_interval"), f"{location}.scrape_interval")

        args = _coerce_call_args(entry.get("args", []), f"{location}.args")

        calls.append(
            ContractCallConfig(
                name=name,
                contract_name=contract_name,
                contract_address=contract_address,
                abi_definition=abi_definition,
                args=args,
                output_decimals=DEFAULT_OUTPUT_DECIMALS if output_decimals is None else output_decimals,
                scrape_interval=scrape_interval,
            )
        )

    return calls


def _parse_consistency_config(data: Any) -> ConsistencyConfig:
    _require_table(data, "consistency")

    raw_standard = data.get("standard_rpc_endpoint")

    standard_rpc_endpoint = (
        None
        if raw_standard is None or raw_standard == ""
        else _require_non_empty_string(raw_standard, "consistency.standard_rpc_endpoint")
    )

    replicas_data = data.get("replica_rpc_endpoints", {})

    _require_table(replicas_data, "consistency.replica_rpc_endpoints")

    replicas: list[Endpoint] = []

    for raw_name, raw_url in replicas_data.items():
        name = _require_non_empty_string(raw_name, "consistency.replica_rpc_endpoints.<name>")
        url = _require_non_empty_string(raw_url, f"consistency.replica_rpc_endpoints.{name}")
        replicas.append(Endpoint(name=name, url=url))

    backward_offset = _coerce_optional_int(
        data.get("backward_offset"),
        "consistency.backward_offset",
        allow_none=True,
        minimum=0,
    )

    return ConsistencyConfig(
        standard_rpc_endpoint=standard_rpc_endpoint,
        replica_rpc_endpoints=replicas,
        backward_offset=backward_offset or 0,
    )


def _read_toml(path: Path) -> dict[str, Any]:
    """Read and parse a TOML configuration file with environment variable expansion.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigError: If the TOML is invalid.
    """
    with path.open("r", encoding="utf-8") as file:
        raw_toml = file.read()

    expanded_toml = os.path.expandvars(raw_toml)

    try:
        return tomllib.loads(expanded_toml)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML: {exc}", config_file=str(path)) from exc


def _require_table(value: Any, location: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValidationError(
            f"{location} must be a table.",
            config_section=location,
            expected_type="table",
            value=type(value).__name__,
        )

    return value


def _require_non_empty_string(value: Any, location: str) -> str:
    """Validate that a value is a non-empty string and return it stripped."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"{location} must be a non-empty string.",
            config_section=location,
            expected_type="string",
            value=value if value is None or isinstance(value, str) else type(value).__name__,
        )

    return value.strip()


# Ethereum address format: 0x followed by 40 hex characters (42 characters total)
ETH_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def _validate_ethereum_address(address: str, location: str) -> str:
    """Validate that a string is a valid Ethereum address format.

    This validates format only, not checksum validity (EIP-55).

    Returns:
        Normalized lowercase address string.

    Raises:
        ValidationError: If the address format is invalid.
    """
    normalized = address.strip().lower()

    if not ETH_ADDRESS_PATTERN.match(normalized):
        raise ValidationError(
            f"{location} must be a valid Ethereum address format (0x followed by 40 hex characters).",
            config_section=location,
            config_key="address",
            expected_type="ethereum_address",
            value=address,
        )

    return normalized


def _optional_interval(value: Any, location: str) -> str | None:
    if value is None:
        return None

    if not isinstance(value, str):
        raise ValidationError(
            f"{location} must be a string if provided.",
            config_section=location,
            expected_type="string",
            value=type(value).__name__,
        )

    return _validate_interval(value, location)


def _validate_interval(interval: str, location: str) -> str:
    """Validate that a string is a positive duration ('N', 'Ns', 'Nm' or 'Nh')."""
    from .poller.intervals import parse_duration_to_seconds

    seconds = parse_duration_to_seconds(interval)

    if seconds is None or seconds <= 0:
        raise ValidationError(
            f"{location} must be a positive duration (e.g., '15s', '5m', '1h').",
            config_section=location,
            expected_type="duration_string",
            value=interval,
        )

    return interval


def _coerce_abi_definition(value: Any, location: str) -> str:
    # Inline TOML arrays of tables are accepted alongside JSON strings.
    if isinstance(value, list):
        return json.dumps(value)

    return _require_non_empty_string(value, location)


def _coerce_call_args(value: Any, location: str) -> list[str]:
    if not isinstance(value, list):
        raise ValidationError(
            f"{location} must be an array if provided.",
            config_section=location,
            expected_type="array",
            value=type(value).__name__,
        )

    args: list[str] = []

    for index, item in enumerate(value):
        if isinstance(item, bool):
            args.append("true" if item else "false")
        elif isinstance(item, (str, int)):
            args.append(str(item))
        else:
            raise ValidationError(
                f"{location}[{index}] must be a string.",
                config_section=location,
                expected_type="string",
                value=type(item).__name__,
            )

    return args


def _coerce_optional_int(
    value: Any,
    location: str,
    *,
    allow_none: bool,
    minimum: int | None = None,
) -> int | None:
    """Coerce a value to an integer with optional validation.

    Raises:
        ValidationError: If the value cannot be coerced, is a boolean, or violates constraints.
    """
    if value is None:
        if allow_none:
            return None

        raise ValidationError(
            f"{location} is required.",
            config_section=location,
            config_key=location.split(".")[-1] if "." in location else location,
        )

    if isinstance(value, bool):
        raise ValidationError(
            f"{location} must be an integer, not a boolean.",
            config_section=location,
            expected_type="integer",
            value=type(value).__name__,
        )

    try:
        coerced_value = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"{location} must be an integer.",
            config_section=location,
            expected_type="integer",
            value=value,
        ) from exc

    if minimum is not None and coerced_value < minimum:
        raise ValidationError(
            f"{location} must be greater than or equal to {minimum}.",
            config_section=location,
            value=coerced_value,
            expected_type=f"integer >= {minimum}",
        )

    return coerced_value


__all__ = [
    "AccountConfig",
    "ChainConfig",
    "ConsistencyConfig",
    "ContractCallConfig",
    "DEFAULT_OUTPUT_DECIMALS",
    "DEFAULT_TOKEN_DECIMALS",
    "Endpoint",
    "ExporterConfig",
    "TokenConfig",
    "load_exporter_config",
    "resolve_config_path",
]
