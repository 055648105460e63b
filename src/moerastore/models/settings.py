"""Client selection settings."""

from __future__ import annotations

from moerastore.models._base import MoeraBaseModel


class Settings(MoeraBaseModel):
    """Which Moera client the consumers should use.

    Stored as the two top-level records ``defaultClient`` and
    ``customClientUrl``.
    """

    default_client: bool = True
    custom_client_url: str = ""

    def to_storage(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)
