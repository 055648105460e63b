"""Websocket channel between tabs and the store.

Each tab connects to ``/tabs/{tab_id}``; connecting attaches the tab.
Tabs send JSON requests::

    {"action": "loadData"}
    {"action": "storeData", "data": {...}}
    {"action": "deleteData", "location": "https://..."}
    {"action": "switchData", "location": "https://..."}

and receive ``loadedData`` envelopes as JSON text frames: ``loadData``
answers the calling tab only, the mutating actions are broadcast to every
tab bound to the same client URL.  ``/settings`` reads (GET) and
overwrites (PUT) the client selection settings.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any, Literal

import aiohttp
from aiohttp import web
from pydantic import BaseModel, ConfigDict, ValidationError

from moerastore.client import MoeraStore
from moerastore.config import MoeraStoreConfig
from moerastore.exceptions import MoeraChannelError, MoeraStoreError, MoeraTabClosedError
from moerastore.models.settings import Settings
from moerastore.tabs import TabId

_logger = logging.getLogger(__name__)


class TabRequest(BaseModel):
    """One inbound message from a tab."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    action: Literal["loadData", "storeData", "deleteData", "switchData"]
    data: dict[str, Any] | None = None
    location: str | None = None


def parse_tab_request(text: str) -> TabRequest:
    try:
        return TabRequest.model_validate_json(text)
    except ValidationError as exc:
        raise MoeraChannelError(f"Malformed tab request: {exc.error_count()} error(s)") from exc


class WebSocketTabChannel:
    """:class:`~moerastore.tabs.TabSender` over the tabs' websockets."""

    def __init__(self) -> None:
        self._sockets: dict[TabId, web.WebSocketResponse] = {}

    def attach(self, tab_id: TabId, ws: web.WebSocketResponse) -> None:
        self._sockets[tab_id] = ws

    def detach(self, tab_id: TabId, ws: web.WebSocketResponse) -> None:
        # A reconnect may already have replaced the socket.
        if self._sockets.get(tab_id) is ws:
            del self._sockets[tab_id]

    async def send_message(self, tab_id: TabId, message: Mapping[str, Any]) -> None:
        ws = self._sockets.get(tab_id)
        if ws is None or ws.closed:
            raise MoeraTabClosedError(f"Tab {tab_id} is not connected", tab_id=tab_id)
        try:
            await ws.send_str(json.dumps(message, separators=(",", ":")))
        except ConnectionResetError as exc:
            raise MoeraTabClosedError(f"Tab {tab_id} went away: {exc}", tab_id=tab_id) from exc

    async def close_all(self) -> None:
        sockets = list(self._sockets.values())
        self._sockets.clear()
        for ws in sockets:
            await ws.close()


STORE_KEY = web.AppKey("store", MoeraStore)
CHANNEL_KEY = web.AppKey("channel", WebSocketTabChannel)


async def dispatch_request(store: MoeraStore, channel: WebSocketTabChannel, tab_id: TabId, text: str) -> None:
    """Run one tab request against the store."""
    request = parse_tab_request(text)
    if request.action == "loadData":
        envelope = await store.load_data(tab_id)
        await channel.send_message(tab_id, envelope.to_message())
    elif request.action == "storeData":
        await store.store_data(tab_id, request.data or {})
    elif request.action == "deleteData":
        await store.delete_data(tab_id, request.location)
    elif request.action == "switchData":
        await store.switch_data(tab_id, request.location)


async def _tab_handler(request: web.Request) -> web.WebSocketResponse:
    tab_id: TabId = request.match_info["tab_id"]
    store = request.app[STORE_KEY]
    channel = request.app[CHANNEL_KEY]

    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)
    channel.attach(tab_id, ws)
    await store.add_tab(tab_id)

    try:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    await dispatch_request(store, channel, tab_id, msg.data)
                except (MoeraChannelError, ValidationError) as exc:
                    _logger.warning("Tab %s: dropped request: %s", tab_id, exc)
                except MoeraStoreError:
                    _logger.exception("Tab %s: request failed", tab_id)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                _logger.debug("Tab %s connection error: %s", tab_id, ws.exception())
    finally:
        channel.detach(tab_id, ws)
    return ws


async def _get_settings(request: web.Request) -> web.Response:
    settings = await request.app[STORE_KEY].get_settings()
    return web.json_response(settings.model_dump(by_alias=True))


async def _put_settings(request: web.Request) -> web.Response:
    try:
        settings = Settings.model_validate(await request.json())
    except (json.JSONDecodeError, ValidationError) as exc:
        raise web.HTTPBadRequest(text=f"Invalid settings: {exc}") from exc
    store = request.app[STORE_KEY]
    await store.set_settings(settings)
    return web.json_response((await store.get_settings()).model_dump(by_alias=True))


def create_app(config: MoeraStoreConfig | None = None) -> web.Application:
    channel = WebSocketTabChannel()
    store = MoeraStore(config, sender=channel)

    async def _lifecycle(_app: web.Application) -> AsyncIterator[None]:
        async with store:
            yield
            await channel.close_all()

    app = web.Application()
    app[STORE_KEY] = store
    app[CHANNEL_KEY] = channel
    app.router.add_get("/tabs/{tab_id}", _tab_handler)
    app.router.add_get("/settings", _get_settings)
    app.router.add_put("/settings", _put_settings)
    app.cleanup_ctx.append(_lifecycle)
    return app


def run_server(config: MoeraStoreConfig) -> None:
    web.run_app(create_app(config), host=config.host, port=config.port)
