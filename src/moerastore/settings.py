"""Settings accessor: which client URL consumers should use."""

from __future__ import annotations

import logging

from moerastore._constants import DEFAULT_CLIENT_URL, SETTINGS_KEYS
from moerastore._storage import Storage
from moerastore.models.settings import Settings

_logger = logging.getLogger(__name__)


class SettingsAccessor:
    """Read and write the ``defaultClient``/``customClientUrl`` records.

    Missing records are a valid state and resolve to the built-in client.
    """

    def __init__(self, storage: Storage, *, default_client_url: str = DEFAULT_CLIENT_URL) -> None:
        self._storage = storage
        self._default_client_url = default_client_url

    async def get_settings(self) -> Settings:
        stored = await self._storage.get(SETTINGS_KEYS)
        default_client = stored.get("defaultClient")
        custom_client_url = stored.get("customClientUrl")
        return Settings(
            default_client=default_client if default_client is not None else True,
            custom_client_url=custom_client_url or self._default_client_url,
        )

    async def set_settings(self, settings: Settings) -> None:
        await self._storage.set(settings.to_storage())
        _logger.debug(
            "Settings updated default_client=%s custom_client_url=%s",
            settings.default_client,
            settings.custom_client_url,
        )

    async def get_client_url(self) -> str:
        """Resolve the client URL for consumers without a binding."""
        stored = await self._storage.get(SETTINGS_KEYS)
        default_client = stored.get("defaultClient")
        if default_client is None or default_client:
            return self._default_client_url
        return stored.get("customClientUrl") or self._default_client_url
