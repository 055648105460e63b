"""Durable key-value backing stores.

The store layer only needs four asynchronous primitives over string keys:
``get``, ``set``, ``remove`` and ``clear``.  Values are JSON-compatible
and are copied on the way in and out, so callers may mutate what they
get back without touching stored state.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol

from moerastore.exceptions import MoeraStorageError

_logger = logging.getLogger(__name__)


def _as_keys(keys: str | Iterable[str]) -> list[str]:
    if isinstance(keys, str):
        return [keys]
    return list(keys)


class Storage(Protocol):
    """Structural backing-store interface.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementations concrete.
    """

    async def get(self, keys: str | Iterable[str]) -> dict[str, Any]:
        """Return ``{key: value}`` for the requested keys that exist."""
        ...

    async def set(self, items: Mapping[str, Any]) -> None:
        ...

    async def remove(self, keys: str | Iterable[str]) -> None:
        ...

    async def clear(self) -> None:
        ...


class MemoryStorage:
    """Process-local storage.  Contents are lost when the process exits."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(dict(initial)) if initial else {}

    async def get(self, keys: str | Iterable[str]) -> dict[str, Any]:
        return {key: copy.deepcopy(self._data[key]) for key in _as_keys(keys) if key in self._data}

    async def set(self, items: Mapping[str, Any]) -> None:
        self._data.update(copy.deepcopy(dict(items)))

    async def remove(self, keys: str | Iterable[str]) -> None:
        for key in _as_keys(keys):
            self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of everything stored."""
        return copy.deepcopy(self._data)


class JsonFileStorage:
    """Storage persisted to a single JSON object file.

    The file is read once, on first access.  Every mutation rewrites it
    through a temporary file that atomically replaces the original, so a
    crash never leaves a truncated file behind.  Blocking file I/O runs in
    the default executor.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._data: dict[str, Any] | None = None
        self._io_lock = asyncio.Lock()

    def _read_file(self) -> dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise MoeraStorageError(
                f"Cannot read {self._path}: {exc}",
                operation="read",
            ) from exc
        if not text.strip():
            return {}
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MoeraStorageError(
                f"Storage file {self._path} is not valid JSON: {exc}",
                operation="read",
            ) from exc
        if not isinstance(parsed, dict):
            raise MoeraStorageError(
                f"Storage file {self._path} does not contain a JSON object",
                operation="read",
            )
        return parsed

    def _write_file(self, text: str) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(text, encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise MoeraStorageError(
                f"Cannot write {self._path}: {exc}",
                operation="write",
            ) from exc

    async def _loaded(self) -> dict[str, Any]:
        if self._data is None:
            loop = asyncio.get_running_loop()
            async with self._io_lock:
                if self._data is None:
                    self._data = await loop.run_in_executor(None, self._read_file)
                    _logger.debug("Loaded %d keys from %s", len(self._data), self._path)
        return self._data

    async def _commit(self, staged: dict[str, Any], operation: str) -> None:
        """Write *staged* to disk, then make it the cached state.

        A failed write leaves both the file and the cache untouched.
        """
        try:
            text = json.dumps(staged, ensure_ascii=False, indent=1, sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise MoeraStorageError(
                f"Value is not JSON serializable: {exc}",
                operation=operation,
            ) from exc
        loop = asyncio.get_running_loop()
        async with self._io_lock:
            await loop.run_in_executor(None, self._write_file, text)
        self._data = staged

    async def get(self, keys: str | Iterable[str]) -> dict[str, Any]:
        data = await self._loaded()
        return {key: copy.deepcopy(data[key]) for key in _as_keys(keys) if key in data}

    async def set(self, items: Mapping[str, Any]) -> None:
        staged = dict(await self._loaded())
        staged.update(copy.deepcopy(dict(items)))
        await self._commit(staged, "set")
        _logger.debug("set %s", sorted(items))

    async def remove(self, keys: str | Iterable[str]) -> None:
        data = await self._loaded()
        removed = [key for key in _as_keys(keys) if key in data]
        if not removed:
            return
        staged = {key: value for key, value in data.items() if key not in removed}
        await self._commit(staged, "remove")
        _logger.debug("remove %s", removed)

    async def clear(self) -> None:
        await self._loaded()
        await self._commit({}, "clear")
        _logger.debug("clear %s", self._path)
