"""
tests/unit/test_ingestion.py — Event Ingestion Loop Tests

Drives a connected client through the fake WebSocket:
  - frames reach subscribers and plugins on their channels
  - unknown discriminators arrive on the unknown channel byte-for-byte
  - fragmented messages are reassembled before parsing
  - a stream fault detaches the session, releases it in the background and
    delivers DisconnectedError; raising subscribers are swallowed
  - cancellation (release) is silent
"""

from __future__ import annotations

import asyncio
import json

import pytest

from conftest import settle
from miraiclient.dispatch.plugins import Plugin
from miraiclient.exceptions import DisconnectedError, InvalidOperationError
from miraiclient.gateway.events import EventChannel, GroupMessageEvent, UnknownEvent


GROUP_MESSAGE = {
    "type": "GroupMessage",
    "messageChain": [{"type": "Plain", "text": "hello"}],
    "sender": {
        "id": 123,
        "memberName": "alice",
        "permission": "MEMBER",
        "group": {"id": 456, "name": "g", "permission": "MEMBER"},
    },
}


class Collector:
    """Subscriber that records events and signals each arrival."""

    def __init__(self, result=None) -> None:
        self.events: list = []
        self.arrived = asyncio.Event()
        self.result = result

    def __call__(self, client, event):
        self.events.append(event)
        self.arrived.set()
        return self.result

    async def wait(self, count: int = 1) -> None:
        while len(self.events) < count:
            self.arrived.clear()
            await asyncio.wait_for(self.arrived.wait(), 1)


# ─────────────────────────────────────────────────────────────────────────────
# Delivery
# ─────────────────────────────────────────────────────────────────────────────

class TestDelivery:
    @pytest.mark.asyncio
    async def test_group_message_reaches_subscriber(self, make_client, connector, endpoint):
        client = make_client()
        collector = Collector()
        client.subscribe(EventChannel.GROUP_MESSAGE, collector)
        await client.connect(endpoint, 10001)

        connector.events.push_json(GROUP_MESSAGE)
        await collector.wait()

        event = collector.events[0]
        assert isinstance(event, GroupMessageEvent)
        assert event.sender.group.id == 456
        await client.aclose()
        await settle()

    @pytest.mark.asyncio
    async def test_decorator_subscription(self, make_client, connector, endpoint):
        client = make_client()
        seen = []
        done = asyncio.Event()

        @client.on("bot_online")
        async def on_online(c, event):
            seen.append((c, event.qq))
            done.set()

        await client.connect(endpoint, 10001)
        connector.events.push_json({"type": "BotOnlineEvent", "qq": 10001})
        await asyncio.wait_for(done.wait(), 1)

        assert seen == [(client, 10001)]
        await client.aclose()
        await settle()

    @pytest.mark.asyncio
    async def test_plugin_sees_event_first(self, make_client, connector, endpoint):
        handled = asyncio.Event()

        class Swallow(Plugin):
            channels = frozenset({EventChannel.GROUP_MESSAGE})

            async def handle_event(self, client, channel, event) -> bool:
                handled.set()
                return True

        client = make_client()
        collector = Collector()
        client.subscribe(EventChannel.GROUP_MESSAGE, collector)
        client.add_plugin(Swallow())
        await client.connect(endpoint, 10001)

        connector.events.push_json(GROUP_MESSAGE)
        await asyncio.wait_for(handled.wait(), 1)
        await client.wait_background()

        assert collector.events == []
        await client.aclose()
        await settle()

    @pytest.mark.asyncio
    async def test_unknown_type_delivered_unchanged(self, make_client, connector, endpoint):
        client = make_client()
        collector = Collector()
        client.subscribe(EventChannel.UNKNOWN, collector)
        await client.connect(endpoint, 10001)

        raw = '{"type": "NotARealType",  "nested": {"k": [1, 2.50, null]}, "s": "\\u4f60"}'
        connector.events.push(raw)
        await collector.wait()

        event = collector.events[0]
        assert isinstance(event, UnknownEvent)
        assert event.raw_json == raw
        assert event.raw_json.encode("utf-8") == raw.encode("utf-8")
        await client.aclose()
        await settle()

    @pytest.mark.asyncio
    async def test_fragmented_message(self, make_client, connector, endpoint):
        client = make_client()
        collector = Collector()
        client.subscribe(EventChannel.GROUP_MESSAGE, collector)
        await client.connect(endpoint, 10001)

        data = json.dumps(GROUP_MESSAGE).encode("utf-8")
        a, b = len(data) // 3, 2 * len(data) // 3
        connector.events.push(data[:a], data[a:b], data[b:])
        await collector.wait()

        assert collector.events[0].message_chain[0]["text"] == "hello"
        await client.aclose()
        await settle()

    @pytest.mark.asyncio
    async def test_arrival_order_preserved(self, make_client, connector, endpoint):
        client = make_client()
        collector = Collector()
        client.subscribe(EventChannel.BOT_ONLINE, collector)
        await client.connect(endpoint, 10001)

        for qq in (1, 2, 3):
            connector.events.push_json({"type": "BotOnlineEvent", "qq": qq})
        await collector.wait(3)

        assert [e.qq for e in collector.events] == [1, 2, 3]
        await client.aclose()
        await settle()

    @pytest.mark.asyncio
    async def test_command_stream(self, make_client, connector, endpoint):
        client = make_client()
        collector = Collector()
        client.subscribe(EventChannel.COMMAND_EXECUTED, collector)
        await client.connect(endpoint, 10001, listen_commands=True)

        connector.command.push_json({"name": "ping", "friend": None, "member": None, "args": []})
        await collector.wait()

        assert collector.events[0].name == "ping"
        await client.aclose()
        await settle()

    @pytest.mark.asyncio
    async def test_handler_failure_does_not_stop_loop(self, make_client, connector, endpoint):
        client = make_client()
        failures = []
        client.on_dispatch_error(lambda channel, event, exc: failures.append(exc))

        def broken(c, e):
            raise RuntimeError("bug in handler")

        collector = Collector()
        client.subscribe(EventChannel.BOT_ONLINE, broken)
        client.subscribe(EventChannel.BOT_RELOGIN, collector)
        await client.connect(endpoint, 10001)

        connector.events.push_json({"type": "BotOnlineEvent", "qq": 1})
        connector.events.push_json({"type": "BotReloginEvent", "qq": 1})
        await collector.wait()
        await client.wait_background()

        assert client.connected
        assert len(failures) == 1
        assert isinstance(failures[0], RuntimeError)
        await client.aclose()
        await settle()


# ─────────────────────────────────────────────────────────────────────────────
# Disconnection
# ─────────────────────────────────────────────────────────────────────────────

class TestDisconnect:
    @pytest.mark.asyncio
    async def test_stream_fault_notifies_and_releases(self, make_client, gateway, connector, endpoint):
        client = make_client()

        def broken(c, err):
            raise RuntimeError("subscriber bug")

        collector = Collector()
        client.subscribe(EventChannel.DISCONNECTED, broken)
        client.subscribe(EventChannel.DISCONNECTED, collector)
        await client.connect(endpoint, 10001)

        cause = ConnectionResetError("peer reset")
        connector.events.fail(cause)
        await collector.wait()
        await client.wait_background()

        err = collector.events[0]
        assert isinstance(err, DisconnectedError)
        assert err.stream == "events"
        assert err.cause is cause
        assert err.__cause__ is cause
        assert not client.connected
        assert client.session is None
        assert len(gateway.calls("POST", "/release")) == 1

        await client.aclose()
        assert len(gateway.calls("POST", "/release")) == 1
        await settle()

    @pytest.mark.asyncio
    async def test_bad_json_is_fatal(self, make_client, connector, endpoint):
        client = make_client()
        collector = Collector()
        client.subscribe(EventChannel.DISCONNECTED, collector)
        await client.connect(endpoint, 10001)

        connector.events.push("{not json")
        await collector.wait()

        assert isinstance(collector.events[0].cause, InvalidOperationError)
        assert not client.connected
        await client.aclose()
        await settle()

    @pytest.mark.asyncio
    async def test_single_notification_with_two_streams(self, make_client, connector, endpoint):
        client = make_client()
        collector = Collector()
        client.subscribe(EventChannel.DISCONNECTED, collector)
        await client.connect(endpoint, 10001, listen_commands=True)
        await settle()

        connector.events.fail(ConnectionError("events down"))
        connector.command.fail(ConnectionError("command down"))
        await collector.wait()
        await client.wait_background()
        await settle()

        assert len(collector.events) == 1
        await client.aclose()
        await settle()

    @pytest.mark.asyncio
    async def test_release_is_silent(self, make_client, connector, endpoint):
        client = make_client()
        collector = Collector()
        client.subscribe(EventChannel.DISCONNECTED, collector)
        await client.connect(endpoint, 10001)
        await settle()

        await client.release()
        await settle()

        assert collector.events == []
        assert connector.events.closed
        await client.aclose()
