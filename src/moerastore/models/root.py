"""Root registry entries and list helpers.

A client URL owns an ordered list of roots.  ``url`` is the identity of a
root; ``name`` is a display label that may be stale or missing and is
never used for lookups.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import field_validator

from moerastore.models._base import MoeraBaseModel


class Root(MoeraBaseModel):
    """A selectable home location."""

    url: str
    name: str | None = None

    @field_validator("url")
    @classmethod
    def _require_url(cls, value: str) -> str:
        if not value:
            raise ValueError("root url must be non-empty")
        return value


def parse_roots(value: Any) -> list[Root]:
    """Build a registry from its stored form.

    A missing record yields an empty registry.  Entries without a usable
    ``url`` are skipped.
    """
    if not isinstance(value, list):
        return []
    roots: list[Root] = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        url = entry.get("url")
        if not isinstance(url, str) or not url:
            continue
        name = entry.get("name")
        roots.append(Root(url=url, name=name if isinstance(name, str) else None))
    return roots


def dump_roots(roots: Iterable[Root]) -> list[dict[str, Any]]:
    return [root.model_dump(by_alias=True) for root in roots]


def find_root(roots: Iterable[Root], location: str | None) -> Root | None:
    if not location:
        return None
    return next((root for root in roots if root.url == location), None)


def get_root_name(roots: Iterable[Root], location: str | None) -> str | None:
    root = find_root(roots, location)
    return root.name if root is not None else None


def set_root(roots: list[Root], location: str, name: str | None) -> list[Root]:
    """Insert or rename the root at *location*.

    An existing entry is replaced in place, keeping its position;
    otherwise the new root is appended.
    """
    entry = Root(url=location, name=name)
    if find_root(roots, location) is None:
        return [*roots, entry]
    return [entry if root.url == location else root for root in roots]


def remove_root(roots: list[Root], location: str | None) -> list[Root]:
    return [root for root in roots if root.url != location]
