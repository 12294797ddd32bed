"""
miraiclient/dispatch/subscribers.py — Per-channel Subscriber Lists

Handlers are called as handler(client, event) and may be plain callables or
coroutine functions. A truthy return value marks the event handled.
"""

from __future__ import annotations

import threading
from typing import Any, Callable

from miraiclient.gateway.events import ChannelLike, channel_key

Handler = Callable[[Any, Any], Any]


class SubscriberRegistry:
    """Channel → ordered tuple of handlers. Each mutation swaps in a new tuple."""

    def __init__(self) -> None:
        self._handlers: dict[str, tuple[Handler, ...]] = {}
        self._lock = threading.Lock()

    def subscribe(self, channel: ChannelLike, handler: Handler) -> Handler:
        if not callable(handler):
            raise TypeError(f"Subscriber must be callable, got {type(handler).__name__}")
        key = channel_key(channel)
        with self._lock:
            self._handlers[key] = self._handlers.get(key, ()) + (handler,)
        return handler

    def unsubscribe(self, channel: ChannelLike, handler: Handler) -> bool:
        """Remove the first registration of handler. Returns whether one was removed."""
        key = channel_key(channel)
        with self._lock:
            current = self._handlers.get(key, ())
            for i, h in enumerate(current):
                if h == handler:
                    self._handlers[key] = current[:i] + current[i + 1:]
                    return True
        return False

    def handlers(self, channel: ChannelLike) -> tuple[Handler, ...]:
        return self._handlers.get(channel_key(channel), ())

    def clear(self) -> None:
        with self._lock:
            self._handlers = {}

    def __len__(self) -> int:
        return sum(len(h) for h in self._handlers.values())
