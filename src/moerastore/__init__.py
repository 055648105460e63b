"""moerastore - Versioned multi-root client data store for Moera consumers."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("moerastore")
except PackageNotFoundError:
    __version__ = "0+local"
from moerastore._storage import JsonFileStorage, MemoryStorage, Storage
from moerastore.client import MoeraStore
from moerastore.config import MoeraStoreConfig
from moerastore.exceptions import (
    MoeraChannelError,
    MoeraConfigError,
    MoeraStorageError,
    MoeraStoreError,
    MoeraTabClosedError,
)
from moerastore.models import ClientData, Envelope, HomeInfo, Root, Settings
from moerastore.tabs import TabRegistry, TabSender

__all__ = [
    "__version__",
    "ClientData",
    "Envelope",
    "HomeInfo",
    "JsonFileStorage",
    "MemoryStorage",
    "MoeraChannelError",
    "MoeraConfigError",
    "MoeraStorageError",
    "MoeraStore",
    "MoeraStoreConfig",
    "MoeraStoreError",
    "MoeraTabClosedError",
    "Root",
    "Settings",
    "Storage",
    "TabRegistry",
    "TabSender",
]
