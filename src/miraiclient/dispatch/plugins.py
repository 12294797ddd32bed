"""
miraiclient/dispatch/plugins.py — Plugin Base & Registry

Plugins see every event before plain subscribers do. A plugin declares the
channels it cares about and returns True from handle_event() to stop the
chain for that event.

Example:
    class EchoPlugin(Plugin):
        channels = frozenset({EventChannel.FRIEND_MESSAGE})

        async def handle_event(self, client, channel, event) -> bool:
            await client.send_friend_message(event.sender.id, event.message_chain)
            return True

The registry is copy-on-write: add/remove build a new tuple under a lock and
swap it in; the dispatch chain reads one snapshot per event without locking.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Optional

from miraiclient.gateway.events import channel_key


class Plugin(ABC):
    """
    Base class for event plugins.

    `channels` is None to receive every channel, or a set of EventChannel
    values / custom channel names.
    """

    channels: ClassVar[Optional[frozenset]] = None

    def can_handle(self, channel: str) -> bool:
        if self.channels is None:
            return True
        return channel in {channel_key(c) for c in self.channels}

    @abstractmethod
    async def handle_event(self, client: Any, channel: str, event: Any) -> bool:
        """Handle one event. Return True to mark it handled and stop the chain."""


class PluginRegistry:
    """Ordered, copy-on-write set of plugins."""

    def __init__(self) -> None:
        self._plugins: tuple[Plugin, ...] = ()
        self._lock = threading.Lock()

    def add(self, plugin: Plugin) -> None:
        with self._lock:
            self._plugins = self._plugins + (plugin,)

    def remove(self, plugin: Plugin) -> bool:
        """Remove a plugin. Unknown plugins are ignored; returns whether one was removed."""
        with self._lock:
            remaining = tuple(p for p in self._plugins if p is not plugin)
            removed = len(remaining) != len(self._plugins)
            self._plugins = remaining
        return removed

    def snapshot(self) -> tuple[Plugin, ...]:
        return self._plugins

    def clear(self) -> None:
        with self._lock:
            self._plugins = ()

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, plugin: object) -> bool:
        return any(p is plugin for p in self._plugins)

    def __repr__(self) -> str:
        return f"<PluginRegistry plugins={[type(p).__name__ for p in self._plugins]}>"
