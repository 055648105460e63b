"""Internal constants shared across the library."""

DEFAULT_CLIENT_URL = "https://client.moera.org/releases/latest"

#: Name of the single critical section guarding client data mutations.
CLIENT_DATA_LOCK = "clientData"

STORAGE_VERSION = 2
ENVELOPE_SOURCE = "moera"
ENVELOPE_ACTION = "loadedData"

# ------------------------------------------------------------------
# Storage keys
# ------------------------------------------------------------------

SETTINGS_KEYS: tuple[str, ...] = ("defaultClient", "customClientUrl")

# Legacy single-root (v1) layout.
LEGACY_SETTINGS_KEY = "settings"
LEGACY_CLIENT_DATA_KEY = "clientData"


def roots_key(client_url: str) -> str:
    """Key of the root registry for *client_url*."""
    return f"roots;{client_url}"


def current_root_key(client_url: str) -> str:
    """Key of the current root pointer for *client_url*."""
    return f"currentRoot;{client_url}"


def client_data_key(client_url: str, root_url: str) -> str:
    """Key of the client data blob stored for one root."""
    return f"clientData;{client_url};{root_url}"
