"""Command-line helpers for chain exporter tooling."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any

from .collectors import prepare_contract_call, prepare_token_balance
from .config import ExporterConfig, load_exporter_config
from .exceptions import ConfigError
from .runtime_settings import RuntimeSettings, get_runtime_settings

MASK = "<masked>"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate chain-exporter configuration files.",
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to config.toml (defaults to CHAIN_EXPORTER_CONFIG_PATH or ./config.toml).",
    )
    parser.add_argument(
        "--print-resolved",
        action="store_true",
        help="Output the resolved runtime settings (with RPC URLs masked by default).",
    )
    parser.add_argument(
        "--show-secrets",
        action="store_true",
        help="Include RPC URLs when printing the resolved configuration.",
    )
    return parser


def validate_config(config_path: str | None = None) -> ExporterConfig:
    """Load the configuration and pre-encode every contract call it declares.

    Raises:
        ConfigError: If the file is invalid or any call cannot be encoded.
    """

    path = Path(config_path).expanduser().resolve() if config_path else None
    config = load_exporter_config(path)

    for token in config.tokens:
        for account in token.accounts:
            prepare_token_balance(config.chain, token, account)

    for call_config in config.contract_calls:
        prepare_contract_call(config.chain, call_config)

    return config


def _serialize(value: Any) -> Any:
    if is_dataclass(value):
        return {key: _serialize(val) for key, val in asdict(value).items()}
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {key: _serialize(val) for key, val in value.items()}
    return value


def _render_runtime_settings(runtime: RuntimeSettings, *, show_secrets: bool) -> str:
    exporter = _serialize(runtime.exporter)

    if not show_secrets:
        exporter["chain"]["rpc_url"] = MASK

        consistency = exporter["consistency"]

        if consistency.get("standard_rpc_endpoint"):
            consistency["standard_rpc_endpoint"] = MASK

        for replica in consistency.get("replica_rpc_endpoints", []):
            replica["url"] = MASK

    payload = {
        "config_path": str(runtime.config_path),
        "settings": _serialize(runtime.app),
        "exporter": exporter,
    }

    return json.dumps(payload, indent=2, sort_keys=True)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for `chain-exporter-validate`."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        if args.print_resolved:
            config_path = Path(args.config_path).expanduser().resolve() if args.config_path else None
            runtime = get_runtime_settings(config_path=config_path)
            print(_render_runtime_settings(runtime, show_secrets=args.show_secrets))
            return 0

        validate_config(args.config_path)
    except FileNotFoundError as exc:
        parser.error(f"Config file not found: {exc}")
    except ConfigError as exc:
        parser.error(str(exc))

    print("Configuration OK")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
