"""Store configuration for moerastore."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from moerastore._constants import DEFAULT_CLIENT_URL
from moerastore.exceptions import MoeraConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class MoeraStoreConfig:
    """Store configuration.

    Parameters
    ----------
    storage_path : Path or None
        JSON file backing the store.  ``None`` keeps everything in memory
        (lost on restart).
    default_client_url : str
        Built-in client URL used when the settings select the default
        client or carry no custom URL.
    migrate_on_open : bool
        Convert legacy single-root storage to the current layout when the
        store is opened.  Migration only runs if legacy records exist.
    serialize_reads : bool
        Take the client data lock in ``load_data`` as well, so a load never
        observes a half-finished delete/switch.
    host : str
        Bind address of the tab channel server.
    port : int
        Port of the tab channel server.
    """

    storage_path: Path | None = None
    default_client_url: str = DEFAULT_CLIENT_URL
    migrate_on_open: bool = True
    serialize_reads: bool = True
    host: str = "127.0.0.1"
    port: int = 8750

    def __post_init__(self) -> None:
        if not self.default_client_url:
            raise MoeraConfigError("default_client_url must be non-empty")
        if not 0 < self.port < 65536:
            raise MoeraConfigError(f"port must be between 1 and 65535, got {self.port}")

    @classmethod
    def from_env(cls, **overrides: Any) -> MoeraStoreConfig:
        """Create configuration from environment variables.

        Reads ``MOERA_STORAGE_PATH``, ``MOERA_DEFAULT_CLIENT_URL``,
        ``MOERA_HOST``, ``MOERA_PORT``, ``MOERA_MIGRATE_ON_OPEN`` and
        ``MOERA_SERIALIZE_READS``. Explicit keyword arguments override
        environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        path_env = env.get("MOERA_STORAGE_PATH")
        if path_env:
            config_kwargs["storage_path"] = Path(path_env).expanduser()

        url_env = env.get("MOERA_DEFAULT_CLIENT_URL")
        if url_env:
            config_kwargs["default_client_url"] = url_env.strip()

        host_env = env.get("MOERA_HOST")
        if host_env:
            config_kwargs["host"] = host_env

        port_env = env.get("MOERA_PORT")
        if port_env is not None and "port" not in overrides:
            try:
                config_kwargs["port"] = int(port_env)
            except ValueError as exc:
                raise MoeraConfigError(f"MOERA_PORT is not a number: {port_env!r}") from exc

        if "migrate_on_open" not in overrides:
            config_kwargs["migrate_on_open"] = _env_bool(env.get("MOERA_MIGRATE_ON_OPEN"), True)
        if "serialize_reads" not in overrides:
            config_kwargs["serialize_reads"] = _env_bool(env.get("MOERA_SERIALIZE_READS"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
