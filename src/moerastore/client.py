"""High-level async facade over the moerastore components."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from moerastore._lock import NamedLock
from moerastore._storage import JsonFileStorage, MemoryStorage, Storage
from moerastore.config import MoeraStoreConfig
from moerastore.data import ClientDataRepository
from moerastore.exceptions import MoeraStoreError
from moerastore.migration import is_storage_v1, migrate_storage_to_v2
from moerastore.models.envelope import Envelope
from moerastore.models.settings import Settings
from moerastore.settings import SettingsAccessor
from moerastore.tabs import TabId, TabRegistry, TabSender

_logger = logging.getLogger(__name__)


class MoeraStore:
    """Per-client-URL root and data store with live tab notifications.

    Usage::

        async with MoeraStore(config, sender=channel) as store:
            await store.add_tab(tab_id)
            envelope = await store.load_data(tab_id)
    """

    def __init__(
        self,
        config: MoeraStoreConfig | None = None,
        *,
        sender: TabSender,
        storage: Storage | None = None,
    ) -> None:
        self._config = config or MoeraStoreConfig()
        self._sender = sender
        self._storage = storage
        self._settings: SettingsAccessor | None = None
        self._tabs: TabRegistry | None = None
        self._repository: ClientDataRepository | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> MoeraStore:
        await self.open()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()

    async def open(self) -> None:
        """Wire the components and run the legacy migration if needed."""
        if self._storage is None:
            path = self._config.storage_path
            self._storage = JsonFileStorage(path) if path is not None else MemoryStorage()
        storage = self._storage

        if self._config.migrate_on_open and await is_storage_v1(storage):
            _logger.info("Legacy storage layout found, migrating")
            await migrate_storage_to_v2(storage, default_client_url=self._config.default_client_url)

        self._settings = SettingsAccessor(storage, default_client_url=self._config.default_client_url)
        self._tabs = TabRegistry(self._settings, self._sender)
        self._repository = ClientDataRepository(
            storage,
            self._tabs,
            locks=NamedLock(),
            serialize_reads=self._config.serialize_reads,
        )

    def close(self) -> None:
        """Drop in-memory state.  Attached tabs must attach again after reopening."""
        if self._tabs is not None:
            self._tabs.reset()
        self._tabs = None
        self._repository = None
        self._settings = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_repository(self) -> ClientDataRepository:
        if self._repository is None:
            raise MoeraStoreError("Store not opened. Use 'async with MoeraStore(...) as store:'")
        return self._repository

    def _require_tabs(self) -> TabRegistry:
        if self._tabs is None:
            raise MoeraStoreError("Store not opened. Use 'async with MoeraStore(...) as store:'")
        return self._tabs

    def _require_settings(self) -> SettingsAccessor:
        if self._settings is None:
            raise MoeraStoreError("Store not opened. Use 'async with MoeraStore(...) as store:'")
        return self._settings

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_settings(self) -> Settings:
        return await self._require_settings().get_settings()

    async def set_settings(self, settings: Settings) -> None:
        await self._require_settings().set_settings(settings)

    async def get_client_url(self) -> str:
        return await self._require_settings().get_client_url()

    # ------------------------------------------------------------------
    # Tabs
    # ------------------------------------------------------------------

    async def add_tab(self, tab_id: TabId) -> str:
        return await self._require_tabs().add_tab(tab_id)

    def remove_tab(self, tab_id: TabId) -> None:
        self._require_tabs().remove_tab(tab_id)

    async def get_tab_client_url(self, tab_id: TabId) -> str:
        return await self._require_tabs().get_tab_client_url(tab_id)

    # ------------------------------------------------------------------
    # Client data
    # ------------------------------------------------------------------

    async def load_data(self, tab_id: TabId) -> Envelope:
        return await self._require_repository().load_data(tab_id)

    async def store_data(self, tab_id: TabId, data: Mapping[str, Any]) -> Envelope:
        return await self._require_repository().store_data(tab_id, data)

    async def delete_data(self, tab_id: TabId, location: str | None = None) -> Envelope | None:
        return await self._require_repository().delete_data(tab_id, location)

    async def switch_data(self, tab_id: TabId, location: str | None) -> Envelope:
        return await self._require_repository().switch_data(tab_id, location)
