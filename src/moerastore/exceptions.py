"""Custom exception hierarchy for moerastore."""

from __future__ import annotations


class MoeraStoreError(Exception):
    """Base exception for all moerastore errors."""


class MoeraConfigError(MoeraStoreError):
    """Invalid or missing configuration."""


class MoeraStorageError(MoeraStoreError):
    """Backing store failure (I/O error, corrupt file)."""

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        key: str = "",
    ) -> None:
        self.operation = operation
        self.key = key
        super().__init__(message)


class MoeraChannelError(MoeraStoreError):
    """Malformed message received on a tab channel."""


class MoeraTabClosedError(MoeraChannelError):
    """Delivery to a tab failed because the tab is gone.

    Raised by tab senders; the broadcaster treats it as the signal that
    the consumer detached and drops the tab from the registry.
    """

    def __init__(self, message: str, *, tab_id: int | str | None = None) -> None:
        self.tab_id = tab_id
        super().__init__(message)
