#!/usr/bin/env python3
"""Dump a moerastore JSON storage file grouped by client URL.

Usage
-----
::

    python scripts/dump_storage.py ~/.moera/store.json
    python scripts/dump_storage.py store.json --migrate --json

Options::

    --migrate            Convert a legacy (v1) file to the current layout first
    --json               Output as machine-readable JSON
    --show-secrets       Print client data blobs unredacted
    --verbose / -v       Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from moerastore import JsonFileStorage  # noqa: E402
from moerastore._redact import redact_client_data  # noqa: E402
from moerastore.migration import is_storage_v1, migrate_storage_to_v2  # noqa: E402
from moerastore.settings import SettingsAccessor  # noqa: E402


def _group_by_client(snapshot: dict[str, Any]) -> dict[str, dict[str, Any]]:
    clients: dict[str, dict[str, Any]] = {}
    data_keys: list[tuple[str, Any]] = []
    for key, value in snapshot.items():
        kind, sep, rest = key.partition(";")
        if not sep:
            continue
        if kind in ("roots", "currentRoot"):
            clients.setdefault(rest, {})[kind] = value
        elif kind == "clientData":
            data_keys.append((rest, value))

    # Client URLs are known from the registry keys; prefer the longest match.
    known = sorted(clients, key=len, reverse=True)
    for rest, value in data_keys:
        client_url = next((url for url in known if rest.startswith(url + ";")), None)
        if client_url is None:
            client_url, _, root_url = rest.partition(";")
        else:
            root_url = rest[len(client_url) + 1 :]
        clients.setdefault(client_url, {}).setdefault("data", {})[root_url] = value
    return clients


async def main() -> None:
    parser = argparse.ArgumentParser(description="Dump a moerastore storage file.")
    parser.add_argument("path", type=Path, help="JSON storage file")
    parser.add_argument("--migrate", action="store_true", help="Migrate legacy storage before dumping")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--show-secrets", action="store_true", help="Print client data blobs unredacted")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    storage = JsonFileStorage(args.path)
    if await is_storage_v1(storage):
        if not args.migrate:
            print("Legacy (v1) storage layout; rerun with --migrate to convert it.", file=sys.stderr)
            sys.exit(1)
        await migrate_storage_to_v2(storage)

    raw = json.loads(args.path.read_text(encoding="utf-8")) if args.path.exists() else {}
    accessor = SettingsAccessor(storage)
    settings = await accessor.get_settings()
    result: dict[str, Any] = {
        "settings": settings.model_dump(by_alias=True),
        "clientUrl": await accessor.get_client_url(),
        "clients": _group_by_client(raw),
    }
    if not args.show_secrets:
        for client in result["clients"].values():
            if "data" in client:
                client["data"] = {root_url: redact_client_data(blob) for root_url, blob in client["data"].items()}

    if args.json_mode:
        print(json.dumps(result, indent=2, ensure_ascii=False))
        return

    print(f"Active client URL: {result['clientUrl']}")
    print(f"Settings: {result['settings']}")
    for client_url, client in result["clients"].items():
        print(f"\n== {client_url}")
        print(f"  current root: {client.get('currentRoot')}")
        for root in client.get("roots", []):
            marker = "*" if root.get("url") == client.get("currentRoot") else " "
            print(f"  {marker} {root.get('url')}  ({root.get('name')})")
        for root_url, data in client.get("data", {}).items():
            print(f"  data[{root_url}]: {json.dumps(data, ensure_ascii=False)}")


if __name__ == "__main__":
    asyncio.run(main())
