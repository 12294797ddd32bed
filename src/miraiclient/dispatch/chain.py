"""
miraiclient/dispatch/chain.py — Event Dispatch Chain

For each decoded event:
  1. Take one snapshot of the plugin registry.
  2. Offer the event to each plugin whose can_handle(channel) is true, in
     registration order. A True result stops the chain.
  3. Otherwise call the channel's subscribers in order. A truthy result stops.

spawn() runs dispatch() as a background task. A failing task never reaches
the ingestion loop: its exception is logged and handed to every error sink
registered with on_error().

notify() is the delivery path for client-side notifications (disconnected):
subscribers only, each failure logged and discarded.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable

from miraiclient.dispatch.plugins import PluginRegistry
from miraiclient.dispatch.subscribers import SubscriberRegistry
from miraiclient.gateway.events import ChannelLike, channel_key
from miraiclient.observability.logger import get_logger

log = get_logger(__name__)

ErrorSink = Callable[[str, Any, BaseException], Any]


async def _call(handler: Callable[..., Any], *args: Any) -> Any:
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class DispatchChain:

    def __init__(
        self,
        plugins: PluginRegistry,
        subscribers: SubscriberRegistry,
        sender: Any = None,
    ) -> None:
        self.plugins = plugins
        self.subscribers = subscribers
        self.sender = sender
        self._tasks: set[asyncio.Task] = set()
        self._error_sinks: tuple[ErrorSink, ...] = ()

    # ── Dispatch ──────────────────────────────────────────────────────────────

    async def dispatch(self, channel: ChannelLike, event: Any) -> bool:
        """Run the chain for one event. Returns True if something handled it."""
        key = channel_key(channel)

        for plugin in self.plugins.snapshot():
            if not plugin.can_handle(key):
                continue
            if await plugin.handle_event(self.sender, key, event):
                log.debug("dispatch.handled", channel=key, plugin=type(plugin).__name__)
                return True

        for handler in self.subscribers.handlers(key):
            if await _call(handler, self.sender, event):
                return True
        return False

    def spawn(self, channel: ChannelLike, event: Any) -> asyncio.Task:
        """Schedule dispatch() without awaiting it."""
        key = channel_key(channel)
        task = asyncio.create_task(self.dispatch(key, event), name=f"mirai-dispatch-{key}")
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, key, event))
        return task

    def _on_done(self, task: asyncio.Task, channel: str, event: Any) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        log.error(
            "dispatch.failed",
            channel=channel,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        for sink in self._error_sinks:
            try:
                result = sink(channel, event, exc)
                if inspect.isawaitable(result):
                    sink_task = asyncio.ensure_future(result)
                    self._tasks.add(sink_task)
                    sink_task.add_done_callback(self._on_sink_done)
            except Exception as sink_exc:
                log.error("dispatch.error_sink_failed", error=str(sink_exc))

    def _on_sink_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "dispatch.error_sink_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )

    def on_error(self, sink: ErrorSink) -> ErrorSink:
        """Register sink(channel, event, exc) for dispatch failures."""
        self._error_sinks = self._error_sinks + (sink,)
        return sink

    # ── Notifications ─────────────────────────────────────────────────────────

    async def notify(self, channel: ChannelLike, payload: Any) -> None:
        """Deliver to subscribers only. Subscriber exceptions are logged and dropped."""
        key = channel_key(channel)
        for handler in self.subscribers.handlers(key):
            try:
                if await _call(handler, self.sender, payload):
                    return
            except Exception as exc:
                log.warning(
                    "dispatch.notify_handler_failed",
                    channel=key,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

    # ── Housekeeping ──────────────────────────────────────────────────────────

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every dispatch task started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
