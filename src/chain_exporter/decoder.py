"""Decoding of raw RPC results, ABI call encoding and divergence fingerprints."""

from __future__ import annotations

import enum
import json
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Sequence

from eth_abi import encode as abi_encode
from eth_abi.exceptions import EncodingError
from eth_utils import function_abi_to_4byte_selector
from hexbytes import HexBytes
from web3 import Web3

from .exceptions import AbiEncodingError, DecodeError

NATIVE_DECIMALS = 18
WORD_SIZE = 32
FINGERPRINT_BLOCK_MODULUS = 100

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
INTEGER_TYPE_PATTERN = re.compile(r"^(u?)int(\d*)$")
INTEGER_LITERAL_PATTERN = re.compile(r"^(?P<sign>[+-]?)(?:0[xX](?P<hex>[0-9a-fA-F]+)|(?P<decimal>\d+))$")

TRUE_LITERALS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
FALSE_LITERALS = frozenset({"0", "f", "F", "FALSE", "false", "False"})

RawResult = bytes | bytearray | str


class AbiKind(enum.Enum):
    """Primitive ABI categories understood by argument coercion."""

    ADDRESS = "address"
    BOOL = "bool"
    INT = "int"
    UINT = "uint"
    PASSTHROUGH = "passthrough"


@dataclass(frozen=True, slots=True)
class AbiParamType:
    kind: AbiKind
    type_name: str
    bits: int | None = None

    @property
    def min_value(self) -> int:
        if self.kind is AbiKind.INT and self.bits is not None:
            return -(2 ** (self.bits - 1))
        return 0

    @property
    def max_value(self) -> int:
        if self.bits is None:
            raise ValueError(f"{self.type_name} has no integer range")
        if self.kind is AbiKind.INT:
            return 2 ** (self.bits - 1) - 1
        return 2**self.bits - 1


@dataclass(frozen=True, slots=True)
class EncodedCall:
    """A contract call whose arguments were coerced and encoded once."""

    method: str
    signature: str
    input_types: tuple[str, ...]
    arguments: tuple[Any, ...]
    data: bytes


def scale_quantity(value: int, scale: int) -> float:
    """Return `value / 10**scale` as a float without losing large-integer precision."""

    if scale < 0:
        raise ValueError("scale must be non-negative")

    return float(Decimal(value) / (Decimal(10) ** scale))


def to_bytes(raw: RawResult) -> bytes:
    """Normalise an RPC result (bytes or 0x-hex string) into bytes."""

    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)

    if isinstance(raw, str):
        try:
            return bytes(HexBytes(raw))
        except ValueError as exc:
            raise DecodeError(f"RPC result is not valid hex: {raw!r}") from exc

    raise DecodeError(f"Unsupported RPC result type {type(raw).__name__}.")


def decode_quantity(raw: RawResult, scale: int = NATIVE_DECIMALS) -> float:
    """Interpret a big-endian byte string as an unsigned integer and scale it."""

    data = to_bytes(raw)

    if not data:
        raise DecodeError("RPC result is empty; expected a big-endian integer.", raw_length=0)

    return scale_quantity(int.from_bytes(data, "big"), scale)


def decode_tail_word(raw: RawResult, decimals: int) -> float:
    """Decode the last 32-byte ABI word of a call result as a scaled unsigned integer.

    Raises:
        DecodeError: If the result is shorter than one ABI word.
    """

    data = to_bytes(raw)

    if len(data) < WORD_SIZE:
        raise DecodeError(
            f"Contract call returned {len(data)} bytes; expected at least {WORD_SIZE}.",
            raw_length=len(data),
        )

    return scale_quantity(int.from_bytes(data[-WORD_SIZE:], "big"), decimals)


def parse_param_type(type_name: str) -> AbiParamType:
    """Map a declared ABI parameter type onto its coercion category."""

    normalized = type_name.strip()

    if normalized == "address":
        return AbiParamType(kind=AbiKind.ADDRESS, type_name=normalized)

    if normalized == "bool":
        return AbiParamType(kind=AbiKind.BOOL, type_name=normalized)

    match = INTEGER_TYPE_PATTERN.match(normalized)

    if match:
        bits = int(match.group(2) or "256")

        if bits < 8 or bits > 256 or bits % 8 != 0:
            raise AbiEncodingError(
                f"Invalid integer width in ABI type '{normalized}'.",
                abi_type=normalized,
            )

        kind = AbiKind.UINT if match.group(1) else AbiKind.INT

        return AbiParamType(kind=kind, type_name=normalized, bits=bits)

    return AbiParamType(kind=AbiKind.PASSTHROUGH, type_name=normalized)


def coerce_argument(raw: str, param_type: AbiParamType) -> Any:
    """Convert a configured string argument into the value the ABI encoder expects.

    Raises:
        AbiEncodingError: If the string cannot represent the declared type.
    """

    if param_type.kind is AbiKind.ADDRESS:
        candidate = raw.strip()

        if not ADDRESS_PATTERN.match(candidate):
            raise AbiEncodingError(
                f"'{raw}' is not a 20-byte hex address.",
                abi_type=param_type.type_name,
                argument=raw,
            )

        return Web3.to_checksum_address(candidate)

    if param_type.kind is AbiKind.BOOL:
        candidate = raw.strip()

        if candidate in TRUE_LITERALS:
            return True

        if candidate in FALSE_LITERALS:
            return False

        raise AbiEncodingError(
            f"'{raw}' is not a boolean literal.",
            abi_type=param_type.type_name,
            argument=raw,
        )

    if param_type.kind in (AbiKind.INT, AbiKind.UINT):
        value = _parse_integer(raw, param_type)

        if value < param_type.min_value or value > param_type.max_value:
            raise AbiEncodingError(
                f"{value} is out of range for {param_type.type_name} "
                f"[{param_type.min_value}, {param_type.max_value}].",
                abi_type=param_type.type_name,
                argument=raw,
            )

        return value

    return raw


def _parse_integer(raw: str, param_type: AbiParamType) -> int:
    match = INTEGER_LITERAL_PATTERN.match(raw.strip())

    if match is None:
        raise AbiEncodingError(
            f"'{raw}' is not an integer.",
            abi_type=param_type.type_name,
            argument=raw,
        )

    if match["hex"] is not None:
        value = int(match["hex"], 16)
    else:
        value = int(match["decimal"], 10)

    return -value if match["sign"] == "-" else value


def parse_abi(definition: str | Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    """Load an ABI definition given as a JSON string or an already-parsed list."""

    if isinstance(definition, str):
        try:
            parsed = json.loads(definition)
        except json.JSONDecodeError as exc:
            raise AbiEncodingError(f"ABI definition is not valid JSON: {exc.msg}.") from exc
    elif isinstance(definition, (list, tuple)):
        parsed = list(definition)
    else:
        parsed = definition

    if isinstance(parsed, dict):
        parsed = [parsed]

    if not isinstance(parsed, list) or not all(isinstance(entry, dict) for entry in parsed):
        raise AbiEncodingError("ABI definition must be a JSON array of objects.")

    return list(parsed)


def select_sole_function(definition: str | Sequence[dict[str, Any]]) -> dict[str, Any]:
    """Return the only function declared in an ABI definition.

    Raises:
        AbiEncodingError: If the definition declares no function or more than one.
    """

    functions = [
        entry
        for entry in parse_abi(definition)
        if entry.get("type", "function") == "function"
    ]

    if len(functions) != 1:
        names = sorted(str(entry.get("name", "?")) for entry in functions)
        raise AbiEncodingError(
            f"ABI definition must declare exactly one function; found {len(functions)}.",
            context={"functions": names},
        )

    function = functions[0]

    if not isinstance(function.get("name"), str) or not function["name"]:
        raise AbiEncodingError("ABI function entry is missing its name.")

    return function


def encode_function_call(function_abi: dict[str, Any], arguments: Sequence[Any]) -> bytes:
    """Encode selector and arguments for a single ABI function."""

    input_types = [str(item.get("type", "")) for item in function_abi.get("inputs", [])]

    try:
        selector = function_abi_to_4byte_selector(function_abi)
        payload = abi_encode(input_types, list(arguments))
    except (EncodingError, TypeError, ValueError, OverflowError) as exc:
        raise AbiEncodingError(
            f"Unable to encode call to {function_abi.get('name')}: {exc}",
            context={"input_types": input_types},
        ) from exc

    return bytes(selector) + bytes(payload)


def prepare_function_call(
    definition: str | Sequence[dict[str, Any]],
    raw_arguments: Sequence[str],
) -> EncodedCall:
    """Select the sole ABI function, coerce the string arguments and encode the call."""

    function = select_sole_function(definition)
    inputs = function.get("inputs", [])

    if len(raw_arguments) != len(inputs):
        raise AbiEncodingError(
            f"{function['name']} expects {len(inputs)} argument(s) but {len(raw_arguments)} were configured.",
            context={"method": function["name"]},
        )

    input_types = tuple(str(item.get("type", "")) for item in inputs)

    arguments = tuple(
        coerce_argument(raw, parse_param_type(type_name))
        for raw, type_name in zip(raw_arguments, input_types)
    )

    return EncodedCall(
        method=function["name"],
        signature=f"{function['name']}({','.join(input_types)})",
        input_types=input_types,
        arguments=arguments,
        data=encode_function_call(function, arguments),
    )


def fingerprint(hash_value: RawResult, block_number: int, digits: int = 1) -> int:
    """Summarise a block or state-root hash as `block_number % 100 + low hex digit(s)`.

    Equal hashes at equal heights always yield equal fingerprints; distinct
    hashes may collide.
    """

    if isinstance(hash_value, str):
        hex_body = hash_value[2:] if hash_value.lower().startswith("0x") else hash_value
    else:
        hex_body = bytes(hash_value).hex()

    tail = hex_body[-digits:] if digits > 0 else ""

    if len(tail) != digits or not tail:
        raise DecodeError(f"Hash {hash_value!r} is too short to fingerprint.")

    try:
        low_order = int(tail, 16)
    except ValueError as exc:
        raise DecodeError(f"Hash {hash_value!r} is not hexadecimal.") from exc

    return block_number % FINGERPRINT_BLOCK_MODULUS + low_order


__all__ = [
    "AbiKind",
    "AbiParamType",
    "EncodedCall",
    "NATIVE_DECIMALS",
    "WORD_SIZE",
    "coerce_argument",
    "decode_quantity",
    "decode_tail_word",
    "encode_function_call",
    "fingerprint",
    "parse_abi",
    "parse_param_type",
    "prepare_function_call",
    "scale_quantity",
    "select_sole_function",
    "to_bytes",
]
