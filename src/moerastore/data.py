"""Root registry and client data repository.

Every client URL owns three kinds of records: the root registry
(``roots;<clientUrl>``), the current root pointer
(``currentRoot;<clientUrl>``) and one data blob per root
(``clientData;<clientUrl>;<rootUrl>``).  All read-modify-write sequences
against them run inside the single ``clientData`` critical section; it is
not partitioned per client URL.

Mutations are broadcast to every tab bound to the same client URL once
the critical section has been left.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from moerastore._constants import CLIENT_DATA_LOCK, client_data_key, current_root_key, roots_key
from moerastore._lock import NamedLock
from moerastore._redact import redact_client_data
from moerastore._storage import Storage
from moerastore.models.client_data import ClientData
from moerastore.models.envelope import Envelope, loaded_data
from moerastore.models.root import Root, dump_roots, find_root, get_root_name, parse_roots, remove_root, set_root
from moerastore.tabs import TabId, TabRegistry

_logger = logging.getLogger(__name__)


class ClientDataRepository:
    def __init__(
        self,
        storage: Storage,
        tabs: TabRegistry,
        *,
        locks: NamedLock | None = None,
        serialize_reads: bool = True,
    ) -> None:
        self._storage = storage
        self._tabs = tabs
        self._locks = locks if locks is not None else NamedLock()
        self._serialize_reads = serialize_reads

    # ------------------------------------------------------------------
    # Record access
    # ------------------------------------------------------------------

    async def _read_registry(self, client_url: str) -> tuple[str | None, list[Root]]:
        root_key = current_root_key(client_url)
        registry_key = roots_key(client_url)
        stored = await self._storage.get([root_key, registry_key])
        home_root = stored.get(root_key)
        if not isinstance(home_root, str) or not home_root:
            home_root = None
        return home_root, parse_roots(stored.get(registry_key))

    async def _read_client_data(self, client_url: str, root_url: str) -> ClientData:
        key = client_data_key(client_url, root_url)
        stored = await self._storage.get(key)
        value = stored.get(key)
        return ClientData.from_wire(value if isinstance(value, Mapping) else None)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def load_data(self, tab_id: TabId) -> Envelope:
        """Return the current root's data for the tab's client URL.  Never broadcasts."""
        client_url = await self._tabs.get_tab_client_url(tab_id)
        if not self._serialize_reads:
            return await self._load(client_url)
        async with self._locks.acquire(CLIENT_DATA_LOCK):
            return await self._load(client_url)

    async def _load(self, client_url: str) -> Envelope:
        home_root, roots = await self._read_registry(client_url)
        if not home_root:
            return loaded_data()
        client_data = await self._read_client_data(client_url, home_root)
        return loaded_data(home_root, client_data, node_name=get_root_name(roots, home_root), roots=roots)

    async def store_data(self, tab_id: TabId, data: Mapping[str, Any]) -> Envelope:
        """Merge *data* into the current root's blob.

        A ``home.location`` in *data* makes that location the current root,
        adding it to the registry (or renaming it there after
        ``home.nodeName``) first.
        """
        client_url = await self._tabs.get_tab_client_url(tab_id)
        incoming = ClientData.from_wire(data)
        _logger.debug("store_data tab=%s client_url=%s data=%s", tab_id, client_url, redact_client_data(data))

        async with self._locks.acquire(CLIENT_DATA_LOCK):
            home_root, roots = await self._read_registry(client_url)

            location = incoming.location
            if location:
                records: dict[str, Any] = {}
                if home_root != location:
                    records[current_root_key(client_url)] = location
                    home_root = location
                roots = set_root(roots, location, incoming.node_name)
                records[roots_key(client_url)] = dump_roots(roots)
                await self._storage.set(records)

            if not home_root:
                result = loaded_data()
            else:
                existing = await self._read_client_data(client_url, home_root)
                merged = existing.merged(incoming)
                await self._storage.set({client_data_key(client_url, home_root): merged.to_stored()})
                result = loaded_data(
                    home_root,
                    merged,
                    node_name=get_root_name(roots, home_root),
                    roots=roots,
                )

        await self._tabs.broadcast_message(result, client_url)
        return result

    async def delete_data(self, tab_id: TabId, location: str | None = None) -> Envelope | None:
        """Delete the root at *location* (the current root by default).

        Deleting the current root promotes the last remaining registry
        entry, which also happens when there is no current root at all.
        Returns ``None`` without touching anything when the
        registry is inconsistent with the current root.
        """
        client_url = await self._tabs.get_tab_client_url(tab_id)

        async with self._locks.acquire(CLIENT_DATA_LOCK):
            home_root, roots = await self._read_registry(client_url)
            target = location or home_root
            if find_root(roots, home_root) is None and target != home_root:
                _logger.debug(
                    "delete_data: current root %s not registered, ignoring delete of %s",
                    home_root,
                    target,
                )
                return None

            roots = remove_root(roots, target)
            await self._storage.set({roots_key(client_url): dump_roots(roots)})
            if target:
                await self._storage.remove(client_data_key(client_url, target))

            if target == home_root:
                if not roots:
                    await self._storage.remove(current_root_key(client_url))
                    result = loaded_data(roots=roots)
                else:
                    promoted = roots[-1]
                    await self._storage.set({current_root_key(client_url): promoted.url})
                    client_data = await self._read_client_data(client_url, promoted.url)
                    result = loaded_data(promoted.url, client_data, node_name=promoted.name, roots=roots)
            else:
                assert home_root is not None  # noqa: S101
                client_data = await self._read_client_data(client_url, home_root)
                result = loaded_data(
                    home_root,
                    client_data,
                    node_name=get_root_name(roots, home_root),
                    roots=roots,
                )

        await self._tabs.broadcast_message(result, client_url)
        return result

    async def switch_data(self, tab_id: TabId, location: str | None) -> Envelope:
        """Make the registered root at *location* current.

        Falsy, unknown and already-current locations yield the empty
        envelope and change nothing.
        """
        client_url = await self._tabs.get_tab_client_url(tab_id)

        async with self._locks.acquire(CLIENT_DATA_LOCK):
            home_root, roots = await self._read_registry(client_url)
            root = find_root(roots, location)
            if not location or location == home_root or root is None:
                result = loaded_data()
            else:
                await self._storage.set({current_root_key(client_url): location})
                client_data = await self._read_client_data(client_url, location)
                result = loaded_data(location, client_data, node_name=root.name, roots=roots)

        await self._tabs.broadcast_message(result, client_url)
        return result
