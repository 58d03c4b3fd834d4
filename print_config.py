#!/usr/bin/env python3
"""Dump the resolved settings and TOML config (RPC URLs masked unless --show-secrets)."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from chain_exporter.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main(["--print-resolved", *sys.argv[1:]]))
