#!/usr/bin/env python3
"""Serve the exporter from a source checkout without installing it."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from chain_exporter.main import run  # noqa: E402

if __name__ == "__main__":
    run()
