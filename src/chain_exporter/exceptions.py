"""Exception hierarchy for the chain exporter.

Two families matter to callers:

* `RpcError` and `DecodeError` are transient. A collector tick that raises one
  is logged and skipped; the task keeps its schedule.
* `ConfigError` (and its `ValidationError` / `AbiEncodingError` subclasses) is
  static. It is raised while loading the config or building a collector and is
  never retried.

Every exception carries a `context` dict that is attached to log records as
structured fields.
"""

from __future__ import annotations

from typing import Any


def _with_fields(context: dict[str, object] | None, **fields: Any) -> dict[str, object]:
    """Return a copy of `context` extended with the non-empty `fields`."""

    merged: dict[str, object] = {key: value for key, value in fields.items() if value not in (None, "")}

    if context:
        merged.update(context)

    return merged


class ChainExporterError(Exception):
    def __init__(
        self,
        message: str,
        *,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})

    def __str__(self) -> str:
        if not self.context:
            return self.message

        details = ", ".join(f"{key}={value!r}" for key, value in self.context.items())
        return f"{self.message} (context: {details})"


class RpcError(ChainExporterError):
    """A JSON-RPC request failed: transport, timeout or an error response."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str | None = None,
        rpc_url: str | None = None,
        operation: str | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            context=_with_fields(context, endpoint=endpoint, rpc_url=rpc_url, operation=operation),
        )
        self.endpoint = endpoint
        self.rpc_url = rpc_url
        self.operation = operation


class RpcConnectionError(RpcError):
    pass


class RpcTimeoutError(RpcError):
    pass


class RpcProtocolError(RpcError):
    """The endpoint answered, but with a JSON-RPC error (or a missing block)."""

    def __init__(
        self,
        message: str,
        *,
        rpc_error_code: int | None = None,
        rpc_error_message: str | None = None,
        context: dict[str, object] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            context=_with_fields(
                context,
                rpc_error_code=rpc_error_code,
                rpc_error_message=rpc_error_message,
            ),
            **kwargs,
        )
        self.rpc_error_code = rpc_error_code
        self.rpc_error_message = rpc_error_message


class DecodeError(ChainExporterError):
    """An RPC result did not have the expected shape (too short, not hex, wrong block)."""

    def __init__(
        self,
        message: str,
        *,
        raw_length: int | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, context=_with_fields(context, raw_length=raw_length))
        self.raw_length = raw_length


class ConfigError(ChainExporterError):
    """The configuration cannot be loaded, or a collector cannot be built from it.

    `config_section` names the offending location, e.g. `contract_calls.price`.
    """

    def __init__(
        self,
        message: str,
        *,
        config_file: str | None = None,
        config_section: str | None = None,
        config_key: str | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            context=_with_fields(
                context,
                config_file=config_file,
                config_section=config_section,
                config_key=config_key,
            ),
        )
        self.config_file = config_file
        self.config_section = config_section
        self.config_key = config_key


class ValidationError(ConfigError):
    def __init__(
        self,
        message: str,
        *,
        value: object | None = None,
        expected_type: str | None = None,
        context: dict[str, object] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            context=_with_fields(context, value=value, expected_type=expected_type),
            **kwargs,
        )
        self.value = value
        self.expected_type = expected_type


class AbiEncodingError(ConfigError):
    """An ABI definition or a configured argument cannot be encoded."""

    def __init__(
        self,
        message: str,
        *,
        abi_type: str | None = None,
        argument: object | None = None,
        context: dict[str, object] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            context=_with_fields(context, abi_type=abi_type, argument=argument),
            **kwargs,
        )
        self.abi_type = abi_type
        self.argument = argument


__all__ = [
    "AbiEncodingError",
    "ChainExporterError",
    "ConfigError",
    "DecodeError",
    "RpcConnectionError",
    "RpcError",
    "RpcProtocolError",
    "RpcTimeoutError",
    "ValidationError",
]
