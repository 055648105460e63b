"""Migration from the legacy single-root layout.

Version 1 kept one ``settings`` record (``{"clientUrl": ...}``) and one
``clientData`` blob whose ``home.location`` named the only root.
Version 2 partitions everything by client URL and supports many roots
per client URL.
"""

from __future__ import annotations

import logging
from typing import Any

from moerastore._constants import (
    DEFAULT_CLIENT_URL,
    LEGACY_CLIENT_DATA_KEY,
    LEGACY_SETTINGS_KEY,
    client_data_key,
    current_root_key,
    roots_key,
)
from moerastore._storage import Storage
from moerastore.models.client_data import ClientData
from moerastore.models.root import Root
from moerastore.models.settings import Settings

_logger = logging.getLogger(__name__)

_LEGACY_KEYS = (LEGACY_SETTINGS_KEY, LEGACY_CLIENT_DATA_KEY)


async def is_storage_v1(storage: Storage) -> bool:
    stored = await storage.get(_LEGACY_KEYS)
    return any(stored.get(key) is not None for key in _LEGACY_KEYS)


async def migrate_storage_to_v2(storage: Storage, *, default_client_url: str = DEFAULT_CLIENT_URL) -> None:
    """Rewrite the whole store in the version 2 layout.

    Destructive: the store is cleared before the new records are written.
    Callers must check :func:`is_storage_v1` first, since running this on
    already migrated storage drops everything but the settings.
    """
    stored = await storage.get(_LEGACY_KEYS)
    legacy_settings = stored.get(LEGACY_SETTINGS_KEY)
    legacy_data = stored.get(LEGACY_CLIENT_DATA_KEY)

    await storage.clear()

    client_url = default_client_url
    if isinstance(legacy_settings, dict) and legacy_settings.get("clientUrl"):
        client_url = str(legacy_settings["clientUrl"])
    is_default = client_url == default_client_url
    records: dict[str, Any] = Settings(
        default_client=is_default,
        custom_client_url="" if is_default else client_url,
    ).to_storage()

    client_data = ClientData.from_wire(legacy_data if isinstance(legacy_data, dict) else None)
    home_root = client_data.location
    if home_root:
        records[roots_key(client_url)] = [Root(url=home_root).model_dump(by_alias=True, exclude_none=True)]
        records[current_root_key(client_url)] = home_root
        records[client_data_key(client_url, home_root)] = client_data.to_stored()

    await storage.set(records)
    _logger.info("Storage migrated to v2 client_url=%s home=%s", client_url, home_root)
