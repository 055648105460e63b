"""The ``loadedData`` message sent to consumers."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import Field

from moerastore._constants import ENVELOPE_ACTION, ENVELOPE_SOURCE, STORAGE_VERSION
from moerastore.models._base import MoeraBaseModel
from moerastore.models.client_data import ClientData
from moerastore.models.root import Root, dump_roots


class Envelope(MoeraBaseModel):
    """Response/broadcast message carrying the active root's data.

    ``payload`` always holds ``version``; ``home`` (and the client's own
    fields) appear only when a current root resolved, ``roots`` whenever
    the registry was read to build the message.
    """

    source: str = ENVELOPE_SOURCE
    action: str = ENVELOPE_ACTION
    payload: dict[str, Any] = Field(default_factory=lambda: {"version": STORAGE_VERSION})

    @property
    def has_home(self) -> bool:
        return "home" in self.payload

    @property
    def roots(self) -> list[dict[str, Any]] | None:
        return self.payload.get("roots")

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def loaded_data(
    home_root: str | None = None,
    client_data: ClientData | None = None,
    *,
    node_name: str | None = None,
    roots: Iterable[Root] | None = None,
) -> Envelope:
    """Build an envelope; with no arguments this is the empty envelope."""
    payload: dict[str, Any] = {"version": STORAGE_VERSION}
    if home_root:
        payload.update((client_data or ClientData()).to_payload(home_root, node_name))
    if roots is not None:
        payload["roots"] = dump_roots(roots)
    return Envelope(payload=payload)
