from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any

import pytest

from moerastore._constants import DEFAULT_CLIENT_URL, client_data_key, current_root_key, roots_key
from moerastore._storage import MemoryStorage
from moerastore.data import ClientDataRepository
from moerastore.exceptions import MoeraStorageError, MoeraTabClosedError
from moerastore.models.settings import Settings
from moerastore.settings import SettingsAccessor
from moerastore.tabs import TabId, TabRegistry

D = DEFAULT_CLIENT_URL


class _RecordingSender:
    def __init__(self) -> None:
        self.sent: list[tuple[TabId, dict[str, Any]]] = []
        self.closed: set[TabId] = set()

    async def send_message(self, tab_id: TabId, message: Mapping[str, Any]) -> None:
        if tab_id in self.closed:
            raise MoeraTabClosedError("closed", tab_id=tab_id)
        self.sent.append((tab_id, dict(message)))


class _YieldingStorage(MemoryStorage):
    """Suspends at every access, like a real asynchronous backend."""

    async def get(self, keys: str | Iterable[str]) -> dict[str, Any]:
        await asyncio.sleep(0)
        return await super().get(keys)

    async def set(self, items: Mapping[str, Any]) -> None:
        await asyncio.sleep(0)
        await super().set(items)


class _FailingStorage(MemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    async def set(self, items: Mapping[str, Any]) -> None:
        if self.fail:
            raise MoeraStorageError("disk full", operation="set")
        await super().set(items)


def _make(
    storage: MemoryStorage | None = None,
    *,
    serialize_reads: bool = True,
) -> tuple[MemoryStorage, _RecordingSender, TabRegistry, ClientDataRepository]:
    storage = storage if storage is not None else MemoryStorage()
    sender = _RecordingSender()
    tabs = TabRegistry(SettingsAccessor(storage), sender)
    repo = ClientDataRepository(storage, tabs, serialize_reads=serialize_reads)
    return storage, sender, tabs, repo


@pytest.mark.asyncio
async def test_store_new_location_creates_and_selects_root() -> None:
    storage, _sender, tabs, repo = _make()
    await tabs.add_tab(1)

    envelope = await repo.store_data(1, {"home": {"location": "https://a"}, "x": 1})

    snapshot = storage.snapshot()
    assert snapshot[roots_key(D)] == [{"url": "https://a", "name": None}]
    assert snapshot[current_root_key(D)] == "https://a"
    assert snapshot[client_data_key(D, "https://a")] == {"x": 1}
    assert envelope.payload == {
        "version": 2,
        "home": {"location": "https://a", "nodeName": None},
        "x": 1,
        "roots": [{"url": "https://a", "name": None}],
    }


@pytest.mark.asyncio
async def test_two_roots_then_delete_current_falls_back() -> None:
    storage, _sender, tabs, repo = _make()
    await tabs.add_tab(1)

    await repo.store_data(1, {"home": {"location": "https://a"}, "x": 1})
    await repo.store_data(1, {"home": {"location": "https://b"}, "y": 2})
    snapshot = storage.snapshot()
    assert [r["url"] for r in snapshot[roots_key(D)]] == ["https://a", "https://b"]
    assert snapshot[current_root_key(D)] == "https://b"

    await repo.delete_data(1, "https://b")
    assert storage.snapshot()[current_root_key(D)] == "https://a"

    envelope = await repo.load_data(1)
    assert envelope.to_message() == {
        "source": "moera",
        "action": "loadedData",
        "payload": {
            "version": 2,
            "home": {"location": "https://a", "nodeName": None},
            "x": 1,
            "roots": [{"url": "https://a", "name": None}],
        },
    }


@pytest.mark.asyncio
async def test_load_without_current_root_is_empty() -> None:
    _storage, sender, tabs, repo = _make()
    await tabs.add_tab(1)

    envelope = await repo.load_data(1)

    assert envelope.payload == {"version": 2}
    assert not envelope.has_home
    assert sender.sent == []


@pytest.mark.asyncio
async def test_round_trip_strips_reserved_fields_and_derives_node_name() -> None:
    storage, _sender, tabs, repo = _make()
    await tabs.add_tab(1)

    await repo.store_data(
        1,
        {
            "home": {"location": "https://a", "nodeName": "alice_0", "token": "t0"},
            "clientId": "legacy",
            "feed": [1, 2],
            "prefs": {"theme": "dark"},
        },
    )

    stored = storage.snapshot()[client_data_key(D, "https://a")]
    assert stored == {"home": {"token": "t0"}, "feed": [1, 2], "prefs": {"theme": "dark"}}

    payload = (await repo.load_data(1)).payload
    assert payload["home"] == {"token": "t0", "location": "https://a", "nodeName": "alice_0"}
    assert payload["feed"] == [1, 2]
    assert payload["prefs"] == {"theme": "dark"}
    assert "clientId" not in payload

    # Renaming keeps the root's identity and position.
    await repo.store_data(1, {"home": {"location": "https://a", "nodeName": "alice_1", "token": "t0"}})
    assert storage.snapshot()[roots_key(D)] == [{"url": "https://a", "name": "alice_1"}]
    assert (await repo.load_data(1)).payload["home"]["nodeName"] == "alice_1"


@pytest.mark.asyncio
async def test_store_without_location_merges_into_current_root() -> None:
    storage, _sender, tabs, repo = _make()
    await tabs.add_tab(1)
    await repo.store_data(1, {"home": {"location": "https://a", "token": "t"}, "x": 1, "y": 1})

    envelope = await repo.store_data(1, {"y": 2, "z": 3})

    assert storage.snapshot()[client_data_key(D, "https://a")] == {"home": {"token": "t"}, "x": 1, "y": 2, "z": 3}
    assert envelope.payload["home"]["location"] == "https://a"
    assert envelope.payload["y"] == 2


@pytest.mark.asyncio
async def test_incoming_node_name_is_not_trusted_without_location() -> None:
    storage, _sender, tabs, repo = _make()
    await tabs.add_tab(1)
    await repo.store_data(1, {"home": {"location": "https://a", "nodeName": "alice"}})

    envelope = await repo.store_data(1, {"home": {"nodeName": "mallory"}})

    assert envelope.payload["home"]["nodeName"] == "alice"
    assert storage.snapshot()[roots_key(D)] == [{"url": "https://a", "name": "alice"}]
    assert "home" not in storage.snapshot()[client_data_key(D, "https://a")]


@pytest.mark.asyncio
async def test_store_without_any_root_returns_empty_and_persists_nothing() -> None:
    storage, sender, tabs, repo = _make()
    await tabs.add_tab(1)

    envelope = await repo.store_data(1, {"x": 1})

    assert envelope.payload == {"version": 2}
    assert storage.snapshot() == {}
    assert sender.sent == [(1, envelope.to_message())]


@pytest.mark.asyncio
async def test_switch_to_current_root_changes_nothing() -> None:
    storage, _sender, tabs, repo = _make()
    await tabs.add_tab(1)
    await repo.store_data(1, {"home": {"location": "https://a"}, "x": 1})
    await repo.store_data(1, {"home": {"location": "https://b"}, "y": 2})
    before = storage.snapshot()

    envelope = await repo.switch_data(1, "https://b")

    assert envelope.payload == {"version": 2}
    assert storage.snapshot() == before


@pytest.mark.asyncio
@pytest.mark.parametrize("location", [None, "", "https://unknown"])
async def test_switch_to_unresolvable_target_is_noop(location: str | None) -> None:
    storage, sender, tabs, repo = _make()
    await tabs.add_tab(1)
    await repo.store_data(1, {"home": {"location": "https://a"}})
    before = storage.snapshot()
    sender.sent.clear()

    envelope = await repo.switch_data(1, location)

    assert envelope.payload == {"version": 2}
    assert storage.snapshot() == before
    assert sender.sent == [(1, {"source": "moera", "action": "loadedData", "payload": {"version": 2}})]


@pytest.mark.asyncio
async def test_switch_loads_target_data_and_name() -> None:
    storage, _sender, tabs, repo = _make()
    await tabs.add_tab(1)
    await repo.store_data(1, {"home": {"location": "https://a", "nodeName": "alice"}, "x": 1})
    await repo.store_data(1, {"home": {"location": "https://b", "nodeName": "bob"}, "y": 2})

    envelope = await repo.switch_data(1, "https://a")

    assert storage.snapshot()[current_root_key(D)] == "https://a"
    assert envelope.payload["home"] == {"location": "https://a", "nodeName": "alice"}
    assert envelope.payload["x"] == 1
    assert "y" not in envelope.payload
    assert [r["url"] for r in envelope.payload["roots"]] == ["https://a", "https://b"]


@pytest.mark.asyncio
async def test_delete_last_root_clears_current_root() -> None:
    storage, sender, tabs, repo = _make()
    await tabs.add_tab(1)
    await repo.store_data(1, {"home": {"location": "https://a"}, "x": 1})

    envelope = await repo.delete_data(1)

    assert envelope is not None
    assert envelope.payload == {"version": 2, "roots": []}
    snapshot = storage.snapshot()
    assert current_root_key(D) not in snapshot
    assert client_data_key(D, "https://a") not in snapshot
    assert snapshot[roots_key(D)] == []
    assert (await repo.load_data(1)).payload == {"version": 2}
    assert sender.sent[-1] == (1, envelope.to_message())


@pytest.mark.asyncio
async def test_delete_current_promotes_last_entry_not_most_recently_used() -> None:
    storage, _sender, tabs, repo = _make()
    await tabs.add_tab(1)
    await repo.store_data(1, {"home": {"location": "https://a"}, "a": 1})
    await repo.store_data(1, {"home": {"location": "https://b"}, "b": 1})
    await repo.store_data(1, {"home": {"location": "https://c", "nodeName": "carol"}, "c": 1})
    await repo.switch_data(1, "https://b")
    await repo.switch_data(1, "https://a")

    envelope = await repo.delete_data(1, "https://a")

    assert envelope is not None
    assert storage.snapshot()[current_root_key(D)] == "https://c"
    assert envelope.payload["home"] == {"location": "https://c", "nodeName": "carol"}
    loaded = (await repo.load_data(1)).payload
    assert loaded["c"] == 1
    assert [r["url"] for r in loaded["roots"]] == ["https://b", "https://c"]


@pytest.mark.asyncio
async def test_delete_other_root_keeps_current() -> None:
    storage, _sender, tabs, repo = _make()
    await tabs.add_tab(1)
    await repo.store_data(1, {"home": {"location": "https://a"}, "x": 1})
    await repo.store_data(1, {"home": {"location": "https://b", "nodeName": "bob"}, "y": 2})

    envelope = await repo.delete_data(1, "https://a")

    assert envelope is not None
    snapshot = storage.snapshot()
    assert snapshot[current_root_key(D)] == "https://b"
    assert snapshot[roots_key(D)] == [{"url": "https://b", "name": "bob"}]
    assert client_data_key(D, "https://a") not in snapshot
    assert envelope.payload["home"] == {"location": "https://b", "nodeName": "bob"}
    assert envelope.payload["y"] == 2


@pytest.mark.asyncio
async def test_delete_aborts_when_current_root_is_not_registered() -> None:
    storage = MemoryStorage(
        {
            roots_key(D): [{"url": "https://a", "name": None}],
            current_root_key(D): "https://stray",
            client_data_key(D, "https://a"): {"x": 1},
        }
    )
    storage, sender, tabs, repo = _make(storage)
    await tabs.add_tab(1)
    before = storage.snapshot()

    result = await repo.delete_data(1, "https://a")

    assert result is None
    assert storage.snapshot() == before
    assert sender.sent == []


@pytest.mark.asyncio
async def test_delete_on_empty_registry_broadcasts_empty_roots() -> None:
    storage, sender, tabs, repo = _make()
    await tabs.add_tab(1)

    envelope = await repo.delete_data(1)

    assert envelope is not None
    assert envelope.payload == {"version": 2, "roots": []}
    assert storage.snapshot() == {roots_key(D): []}
    assert sender.sent == [(1, envelope.to_message())]


@pytest.mark.asyncio
async def test_delete_without_current_root_promotes_last_registered() -> None:
    storage = MemoryStorage(
        {
            roots_key(D): [{"url": "https://a", "name": "alice"}, {"url": "https://b", "name": "bob"}],
            client_data_key(D, "https://b"): {"x": 2},
        }
    )
    storage, sender, tabs, repo = _make(storage)
    await tabs.add_tab(1)

    envelope = await repo.delete_data(1)

    assert envelope is not None
    assert envelope.payload["home"] == {"location": "https://b", "nodeName": "bob"}
    assert envelope.payload["x"] == 2
    snapshot = storage.snapshot()
    assert snapshot[current_root_key(D)] == "https://b"
    assert len(snapshot[roots_key(D)]) == 2
    assert [tab for tab, _ in sender.sent] == [1]


@pytest.mark.asyncio
async def test_store_broadcasts_to_tabs_of_same_client_url_only() -> None:
    storage, sender, tabs, repo = _make()
    await tabs.add_tab(1)
    await tabs.add_tab(2)
    await SettingsAccessor(storage).set_settings(Settings(default_client=False, custom_client_url="https://custom"))
    await tabs.add_tab(3)

    envelope = await repo.store_data(1, {"home": {"location": "https://a"}, "x": 1})

    assert sorted(tab_id for tab_id, _ in sender.sent) == [1, 2]
    assert sender.sent[0][1] == sender.sent[1][1] == envelope.to_message()


@pytest.mark.asyncio
async def test_client_urls_are_separate_namespaces() -> None:
    storage, _sender, tabs, repo = _make()
    await tabs.add_tab(1)
    await SettingsAccessor(storage).set_settings(Settings(default_client=False, custom_client_url="https://custom"))
    await tabs.add_tab(2)

    await repo.store_data(1, {"home": {"location": "https://a"}, "x": 1})
    await repo.store_data(2, {"home": {"location": "https://a"}, "x": 2})

    assert (await repo.load_data(1)).payload["x"] == 1
    assert (await repo.load_data(2)).payload["x"] == 2
    assert storage.snapshot()[client_data_key("https://custom", "https://a")] == {"x": 2}


@pytest.mark.asyncio
async def test_concurrent_stores_do_not_lose_registry_entries() -> None:
    storage, _sender, tabs, repo = _make(_YieldingStorage())
    await tabs.add_tab(1)

    await asyncio.gather(
        repo.store_data(1, {"home": {"location": "https://a"}, "a": 1}),
        repo.store_data(1, {"home": {"location": "https://b"}, "b": 1}),
        repo.store_data(1, {"home": {"location": "https://c"}, "c": 1}),
    )

    snapshot = storage.snapshot()
    assert sorted(r["url"] for r in snapshot[roots_key(D)]) == ["https://a", "https://b", "https://c"]
    assert snapshot[current_root_key(D)] == snapshot[roots_key(D)][-1]["url"]


@pytest.mark.asyncio
async def test_concurrent_delete_and_load_sees_consistent_state() -> None:
    storage, _sender, tabs, repo = _make(_YieldingStorage())
    await tabs.add_tab(1)
    await repo.store_data(1, {"home": {"location": "https://a"}, "a": 1})
    await repo.store_data(1, {"home": {"location": "https://b"}, "b": 1})

    _deleted, loaded = await asyncio.gather(repo.delete_data(1, "https://b"), repo.load_data(1))

    roots = [r["url"] for r in loaded.payload["roots"]]
    assert loaded.payload["home"]["location"] in roots


@pytest.mark.asyncio
async def test_storage_failure_propagates_and_releases_lock() -> None:
    storage = _FailingStorage()
    storage, sender, tabs, repo = _make(storage)
    await tabs.add_tab(1)
    storage.fail = True

    with pytest.raises(MoeraStorageError):
        await repo.store_data(1, {"home": {"location": "https://a"}})
    assert sender.sent == []

    storage.fail = False
    envelope = await repo.store_data(1, {"home": {"location": "https://a"}})
    assert envelope.payload["home"]["location"] == "https://a"


@pytest.mark.asyncio
async def test_unregistered_tab_uses_current_settings() -> None:
    storage, _sender, _tabs, repo = _make()
    await SettingsAccessor(storage).set_settings(Settings(default_client=False, custom_client_url="https://custom"))

    await repo.store_data(99, {"home": {"location": "https://a"}})

    assert storage.snapshot()[current_root_key("https://custom")] == "https://a"


@pytest.mark.asyncio
async def test_store_debug_log_hides_tokens_and_content(caplog: pytest.LogCaptureFixture) -> None:
    _storage, _sender, tabs, repo = _make()
    await tabs.add_tab(1)

    with caplog.at_level(logging.DEBUG, logger="moerastore.data"):
        await repo.store_data(
            1,
            {"home": {"location": "https://a", "token": "node-token"}, "clientId": "cid-1", "draft": "hello"},
        )

    assert "https://a" in caplog.text
    for secret in ("node-token", "cid-1", "hello"):
        assert secret not in caplog.text
