"""Tab registry and broadcaster.

Consumers (browser tabs) attach with :meth:`TabRegistry.add_tab` and are
bound to the client URL in effect at that moment.  Detaching is never
signalled: a failed delivery is the only evidence that a tab is gone, and
such tabs are dropped from the registry.

The registry lives in memory only.  After a process restart it is empty
and consumers must attach again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from moerastore.models.envelope import Envelope
from moerastore.settings import SettingsAccessor

_logger = logging.getLogger(__name__)

TabId = int | str


class TabSender(Protocol):
    """Delivers one message to one tab.

    Implementations raise (typically :class:`~moerastore.exceptions.MoeraTabClosedError`)
    when the tab can no longer be reached.
    """

    async def send_message(self, tab_id: TabId, message: Mapping[str, Any]) -> None:
        ...


@dataclass(frozen=True, slots=True)
class TabBinding:
    client_url: str


class TabRegistry:
    def __init__(self, settings: SettingsAccessor, sender: TabSender) -> None:
        self._settings = settings
        self._sender = sender
        self._tabs: dict[TabId, TabBinding] = {}

    @property
    def tabs(self) -> dict[TabId, str]:
        """Current bindings as ``{tab_id: client_url}``."""
        return {tab_id: binding.client_url for tab_id, binding in self._tabs.items()}

    async def add_tab(self, tab_id: TabId) -> str:
        """Bind *tab_id* to the current client URL and return it.

        Re-attaching a known tab rebinds it to the URL in effect now.
        """
        client_url = await self._settings.get_client_url()
        self._tabs[tab_id] = TabBinding(client_url=client_url)
        _logger.debug("Tab %s attached client_url=%s", tab_id, client_url)
        return client_url

    def remove_tab(self, tab_id: TabId) -> None:
        if self._tabs.pop(tab_id, None) is not None:
            _logger.debug("Tab %s detached", tab_id)

    def reset(self) -> None:
        """Forget every binding, as after a process restart."""
        self._tabs.clear()

    async def get_tab_client_url(self, tab_id: TabId) -> str:
        binding = self._tabs.get(tab_id)
        if binding is not None:
            return binding.client_url
        return await self._settings.get_client_url()

    async def broadcast_message(self, message: Envelope | Mapping[str, Any], client_url: str) -> list[TabId]:
        """Send *message* to every tab bound to *client_url*.

        Deliveries run concurrently.  Tabs whose delivery failed are removed
        once all deliveries have settled.  Returns the tabs that received
        the message.
        """
        body = message.to_message() if isinstance(message, Envelope) else dict(message)
        targets = [(tab_id, binding) for tab_id, binding in self._tabs.items() if binding.client_url == client_url]
        if not targets:
            return []

        results = await asyncio.gather(
            *(self._sender.send_message(tab_id, body) for tab_id, _ in targets),
            return_exceptions=True,
        )

        delivered: list[TabId] = []
        for (tab_id, binding), result in zip(targets, results, strict=True):
            if isinstance(result, BaseException):
                _logger.debug("Delivery to tab %s failed, dropping it: %r", tab_id, result)
                # A tab that re-attached during the broadcast keeps its new binding.
                if self._tabs.get(tab_id) is binding:
                    del self._tabs[tab_id]
            else:
                delivered.append(tab_id)
        return delivered
