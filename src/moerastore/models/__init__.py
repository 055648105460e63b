"""Record and message models."""

from moerastore.models.client_data import ClientData, HomeInfo
from moerastore.models.envelope import Envelope, loaded_data
from moerastore.models.root import Root, dump_roots, find_root, get_root_name, parse_roots, remove_root, set_root
from moerastore.models.settings import Settings

__all__ = [
    "ClientData",
    "Envelope",
    "HomeInfo",
    "Root",
    "Settings",
    "dump_roots",
    "find_root",
    "get_root_name",
    "loaded_data",
    "parse_roots",
    "remove_root",
    "set_root",
]
