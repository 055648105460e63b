"""Typed view of the opaque client data blob.

The blob belongs to the Moera client and is stored as-is, with two
reserved paths owned by the store:

* ``home.location`` names the root the blob belongs to.  It is derived
  from the storage key and never persisted.
* ``home.nodeName`` mirrors the root's registry name.  It is never
  persisted and is re-derived on every read.

A top-level ``clientId`` is legacy residue and is dropped on write.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from moerastore.models._base import MoeraBaseModel

_LEGACY_FIELDS = frozenset({"clientId"})


class HomeInfo(MoeraBaseModel):
    """The ``home`` section: reserved fields plus whatever else the client keeps there."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    location: str | None = None
    node_name: str | None = None

    def fields(self) -> dict[str, Any]:
        """The client-owned fields of ``home``."""
        return copy.deepcopy(dict(self.model_extra or {}))


class ClientData(MoeraBaseModel):
    """Client data split into the ``home`` section and everything else."""

    home: HomeInfo | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any] | None) -> ClientData:
        """Split a raw blob.  A ``home`` that is not a mapping is discarded."""
        if not data:
            return cls()
        extra = {key: copy.deepcopy(value) for key, value in data.items() if key != "home"}
        home = data.get("home")
        return cls(
            home=HomeInfo.model_validate(dict(home)) if isinstance(home, Mapping) else None,
            extra=extra,
        )

    @property
    def location(self) -> str | None:
        return self.home.location if self.home is not None else None

    @property
    def node_name(self) -> str | None:
        return self.home.node_name if self.home is not None else None

    def merged(self, incoming: ClientData) -> ClientData:
        """Shallow merge: top-level fields of *incoming* replace ours, ``home`` included."""
        return ClientData(
            home=incoming.home if incoming.home is not None else self.home,
            extra={**copy.deepcopy(self.extra), **copy.deepcopy(incoming.extra)},
        )

    def to_stored(self) -> dict[str, Any]:
        """Persisted form: no ``home.location``, no ``home.nodeName``, no ``clientId``.

        An empty ``home`` section is left out.
        """
        stored = {key: copy.deepcopy(value) for key, value in self.extra.items() if key not in _LEGACY_FIELDS}
        home = self.home.fields() if self.home is not None else {}
        if home:
            stored["home"] = home
        return stored

    def to_payload(self, location: str, node_name: str | None) -> dict[str, Any]:
        """Wire form with the reserved ``home`` fields filled in."""
        payload = copy.deepcopy(self.extra)
        home = self.home.fields() if self.home is not None else {}
        home["location"] = location
        home["nodeName"] = node_name
        payload["home"] = home
        return payload
