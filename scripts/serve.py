#!/usr/bin/env python3
"""Run the tab channel server.

Configuration comes from ``MOERA_*`` environment variables (see
``MoeraStoreConfig.from_env``); command-line options override them::

    python scripts/serve.py --storage ~/.moera/store.json --port 8750
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from moerastore.config import MoeraStoreConfig  # noqa: E402
from moerastore.server import run_server  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve moerastore over websockets.")
    parser.add_argument("--storage", type=Path, help="JSON storage file (default: in memory)")
    parser.add_argument("--host", help="Bind address")
    parser.add_argument("--port", type=int, help="Listen port")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, Any] = {}
    if args.storage is not None:
        overrides["storage_path"] = args.storage
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port

    run_server(MoeraStoreConfig.from_env(**overrides))


if __name__ == "__main__":
    main()
