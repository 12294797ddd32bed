"""
miraiclient/client.py — MiraiClient

The public entry point. One client holds at most one session against a
mirai-api-http gateway and exposes every remote operation as a coroutine.

Usage:
    async with MiraiClient() as client:
        @client.on(EventChannel.GROUP_MESSAGE)
        async def echo(client, event):
            await client.send_group_message(event.sender.group.id, event.message_chain)

        await client.connect(EndpointConfig(auth_key="..."), account_id=10001)
        ...

Session-scoped operations raise NotConnectedError before connect() and after
release(); once the client is closed they raise ClientDisposedError.
RPC failures raise the exception mapped from the gateway status code
(see miraiclient.exceptions). Nothing is retried.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

import httpx
from websockets.asyncio.client import connect as websockets_connect

from miraiclient.config.settings import EndpointConfig, Settings, get_settings
from miraiclient.dispatch.chain import DispatchChain, ErrorSink
from miraiclient.dispatch.plugins import Plugin, PluginRegistry
from miraiclient.dispatch.subscribers import Handler, SubscriberRegistry
from miraiclient.exceptions import (
    CapabilityNotSupportedError,
    ClientDisposedError,
    InvalidOperationError,
)
from miraiclient.gateway.events import ApplyEvent, ChannelLike, EventRouter
from miraiclient.gateway.ingestion import Connector
from miraiclient.media.image_host import ImageHost
from miraiclient.media.images import normalize_image
from miraiclient.models import (
    FriendInfo,
    FriendRequestAction,
    GroupConfig,
    GroupInfo,
    GroupRequestAction,
    MemberInfo,
    MemberProfile,
    SessionConfig,
    UploadTarget,
    UploadedImage,
    UploadedVoice,
)
from miraiclient.observability.logger import get_logger
from miraiclient.rpc import commands
from miraiclient.session.capabilities import Capability, CapabilitySet, ServerVersion
from miraiclient.session.manager import HttpFactory, SessionManager
from miraiclient.session.state import Session

log = get_logger(__name__)

DEFAULT_KICK_MESSAGE = "您已被移出群聊"
MAX_MUTE_DURATION = timedelta(days=30)

MessageChain = Sequence[Mapping[str, Any]]
BinarySource = Union[bytes, bytearray, str, os.PathLike]

def default_http_factory(endpoint: EndpointConfig) -> httpx.AsyncClient:
    """One AsyncClient per session; no timeout unless the endpoint sets one."""
    return httpx.AsyncClient(timeout=endpoint.request_timeout)


def validate_message_chain(chain: MessageChain) -> list[dict[str, Any]]:
    """
    Check an outgoing message chain and return it as a list of dicts.

    Source elements cannot be sent and quoting goes through the `quote`
    argument, not a Quote element.
    """
    elements = [dict(element) for element in chain]
    if not elements:
        raise ValueError("Message chain must contain at least one element")
    for element in elements:
        kind = element.get("type")
        if kind == "Source":
            raise ValueError("Source elements cannot be sent")
        if kind == "Quote":
            raise ValueError("Quote elements cannot be sent; pass quote=<message id> instead")
    if all(e.get("type") == "Plain" and not e.get("text") for e in elements):
        raise ValueError("Every element of the message chain is empty")
    return elements


def _mute_seconds(duration: Union[timedelta, int, float]) -> int:
    if not isinstance(duration, timedelta):
        duration = timedelta(seconds=duration)
    if duration <= timedelta(0) or duration >= MAX_MUTE_DURATION:
        raise ValueError(f"Mute duration must be between 0 and 30 days, got {duration}")
    return int(duration.total_seconds())


async def _read_binary(data: BinarySource) -> bytes:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    return await asyncio.to_thread(Path(data).read_bytes)


class MiraiClient:

    def __init__(
        self,
        *,
        http_factory: Optional[HttpFactory] = None,
        ws_connect: Optional[Connector] = None,
        router: Optional[EventRouter] = None,
        image_host: Optional[ImageHost] = None,
    ) -> None:
        self.plugins = PluginRegistry()
        self.subscribers = SubscriberRegistry()
        self.router = router or EventRouter.default()
        self._chain = DispatchChain(self.plugins, self.subscribers, sender=self)
        self._sessions = SessionManager(
            self._chain,
            self.router,
            http_factory or default_http_factory,
            ws_connect or websockets_connect,
        )
        self._image_host = image_host
        self._owns_image_host = image_host is None
        self._disposed = False

    async def __aenter__(self) -> "MiraiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"<MiraiClient session={self._sessions.current!r} disposed={self._disposed}>"

    # ─────────────────────────────────────────────────────────────────────────
    # Session lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    async def connect(
        self,
        endpoint: EndpointConfig,
        account_id: int,
        listen_commands: bool = False,
    ) -> None:
        """
        Authenticate, bind to `account_id` and start the event stream(s).

        Raises AlreadyConnectedError if a session is attached or being
        attached. On failure nothing stays attached and the error propagates.
        """
        self._check_open()
        await self._sessions.connect(endpoint, account_id, listen_commands)

    async def connect_from_settings(self, settings: Optional[Settings] = None) -> None:
        """connect() using Settings (config.yaml + MIRAI_* environment)."""
        settings = settings or get_settings()
        settings.validate_all()
        await self.connect(
            settings.resolved_endpoint(),
            settings.account_id,
            listen_commands=settings.listen_commands,
        )

    async def release(self) -> bool:
        """Release the current session. Returns False if there was none."""
        return await self._sessions.release()

    async def aclose(self) -> None:
        """Drop all handlers and plugins and release the session. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        self.subscribers.clear()
        self.plugins.clear()
        await self._sessions.release()
        if self._owns_image_host and self._image_host is not None:
            await asyncio.to_thread(self._image_host.close)
        log.info("client.closed")

    @property
    def closed(self) -> bool:
        return self._disposed

    @property
    def connected(self) -> bool:
        session = self._sessions.current
        return session is not None and session.connected

    @property
    def session(self) -> Optional[Session]:
        return self._sessions.current

    @property
    def account_id(self) -> Optional[int]:
        session = self._sessions.current
        return session.account_id if session is not None else None

    @property
    def capabilities(self) -> Optional[CapabilitySet]:
        session = self._sessions.current
        return session.capabilities if session is not None else None

    @property
    def server_version(self) -> Optional[ServerVersion]:
        capabilities = self.capabilities
        return capabilities.version if capabilities is not None else None

    async def wait_background(self) -> None:
        """Wait for background teardowns and in-flight dispatch tasks."""
        await self._sessions.wait_background()
        await self._chain.drain()

    def _check_open(self) -> None:
        if self._disposed:
            raise ClientDisposedError()

    def _require(self) -> Session:
        self._check_open()
        return self._sessions.require()

    # ─────────────────────────────────────────────────────────────────────────
    # Server info & session config
    # ─────────────────────────────────────────────────────────────────────────

    async def get_version(self) -> ServerVersion:
        """Query GET /about again and return the gateway version."""
        session = self._require()
        return await commands.get_version(session.rpc)

    async def get_config(self) -> SessionConfig:
        session = self._require()
        payload = await session.rpc.call_payload(
            "GET", "/config", params={"sessionKey": session.session_key}
        )
        return SessionConfig.model_validate(payload)

    async def set_config(
        self,
        cache_size: Optional[int] = None,
        enable_websocket: Optional[bool] = None,
    ) -> None:
        session = self._require()
        await session.rpc.call(
            "POST",
            "/config",
            json={
                "sessionKey": session.session_key,
                "cacheSize": cache_size,
                "enableWebsocket": enable_websocket,
            },
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Contact lists
    # ─────────────────────────────────────────────────────────────────────────

    async def get_friend_list(self) -> list[FriendInfo]:
        session = self._require()
        payload = await session.rpc.call_payload(
            "GET", "/friendList", params={"sessionKey": session.session_key}
        )
        return [FriendInfo.model_validate(item) for item in payload]

    async def get_group_list(self) -> list[GroupInfo]:
        session = self._require()
        payload = await session.rpc.call_payload(
            "GET", "/groupList", params={"sessionKey": session.session_key}
        )
        return [GroupInfo.model_validate(item) for item in payload]

    async def get_member_list(self, group: int) -> list[MemberInfo]:
        session = self._require()
        payload = await session.rpc.call_payload(
            "GET", "/memberList", params={"sessionKey": session.session_key, "target": group}
        )
        return [MemberInfo.model_validate(item) for item in payload]

    # ─────────────────────────────────────────────────────────────────────────
    # Group administration
    # ─────────────────────────────────────────────────────────────────────────

    async def mute(
        self,
        member: int,
        group: int,
        duration: Union[timedelta, int, float],
    ) -> None:
        """Mute a member. `duration` must be above zero and below 30 days."""
        seconds = _mute_seconds(duration)
        session = self._require()
        await session.rpc.call(
            "POST",
            "/mute",
            json={
                "sessionKey": session.session_key,
                "target": group,
                "memberId": member,
                "time": seconds,
            },
        )

    async def unmute(self, member: int, group: int) -> None:
        session = self._require()
        await session.rpc.call(
            "POST",
            "/unmute",
            json={"sessionKey": session.session_key, "target": group, "memberId": member},
        )

    async def mute_all(self, group: int) -> None:
        session = self._require()
        await session.rpc.call(
            "POST", "/muteAll", json={"sessionKey": session.session_key, "target": group}
        )

    async def unmute_all(self, group: int) -> None:
        session = self._require()
        await session.rpc.call(
            "POST", "/unmuteAll", json={"sessionKey": session.session_key, "target": group}
        )

    async def kick(self, member: int, group: int, msg: str = DEFAULT_KICK_MESSAGE) -> None:
        session = self._require()
        await session.rpc.call(
            "POST",
            "/kick",
            json={
                "sessionKey": session.session_key,
                "target": group,
                "memberId": member,
                "msg": msg,
            },
        )

    async def leave_group(self, group: int) -> None:
        session = self._require()
        await session.rpc.call(
            "POST", "/quit", json={"sessionKey": session.session_key, "target": group}
        )

    async def get_group_config(self, group: int) -> GroupConfig:
        session = self._require()
        payload = await session.rpc.call_payload(
            "GET", "/groupConfig", params={"sessionKey": session.session_key, "target": group}
        )
        return GroupConfig.model_validate(payload)

    async def change_group_config(
        self,
        group: int,
        config: Optional[GroupConfig] = None,
        **fields: Any,
    ) -> None:
        """
        Change group settings. Pass a GroupConfig or keyword fields
        (name=, announcement=, confess_talk=, ...); None fields are left as is.
        """
        if config is None:
            config = GroupConfig(**fields)
        session = self._require()
        await session.rpc.call(
            "POST",
            "/groupConfig",
            json={
                "sessionKey": session.session_key,
                "target": group,
                "config": config.to_wire(),
            },
        )

    async def get_member_info(self, member: int, group: int) -> MemberProfile:
        session = self._require()
        payload = await session.rpc.call_payload(
            "GET",
            "/memberInfo",
            params={"sessionKey": session.session_key, "target": group, "memberId": member},
        )
        return MemberProfile.model_validate(payload)

    async def change_member_info(
        self,
        member: int,
        group: int,
        name: Optional[str] = None,
        special_title: Optional[str] = None,
    ) -> None:
        info = MemberProfile(name=name, special_title=special_title)
        session = self._require()
        await session.rpc.call(
            "POST",
            "/memberInfo",
            json={
                "sessionKey": session.session_key,
                "target": group,
                "memberId": member,
                "info": info.to_wire(),
            },
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Friend / join / invitation requests
    # ─────────────────────────────────────────────────────────────────────────

    async def handle_new_friend_request(
        self,
        event: ApplyEvent,
        action: FriendRequestAction,
        message: str = "",
    ) -> None:
        await self._respond("newFriendRequestEvent", event, int(action), message)

    async def handle_member_join_request(
        self,
        event: ApplyEvent,
        action: GroupRequestAction,
        message: str = "",
    ) -> None:
        await self._respond("memberJoinRequestEvent", event, int(action), message)

    async def handle_bot_invited_join_group(
        self,
        event: ApplyEvent,
        action: GroupRequestAction,
        message: str = "",
    ) -> None:
        await self._respond("botInvitedJoinGroupRequestEvent", event, int(action), message)

    async def _respond(self, kind: str, event: ApplyEvent, operate: int, message: str) -> None:
        session = self._require()
        await session.rpc.call(
            "POST",
            f"/resp/{kind}",
            json={
                "sessionKey": session.session_key,
                "eventId": event.event_id,
                "fromId": event.from_id,
                "groupId": event.group_id,
                "operate": operate,
                "message": message,
            },
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Messages
    # ─────────────────────────────────────────────────────────────────────────

    async def send_friend_message(
        self,
        qq: int,
        chain: MessageChain,
        quote: Optional[int] = None,
    ) -> int:
        """Send to a friend. Returns the message id (usable with recall())."""
        elements = validate_message_chain(chain)
        session = self._require()
        return await session.rpc.call_field(
            "POST",
            "/sendFriendMessage",
            "messageId",
            json={
                "sessionKey": session.session_key,
                "qq": qq,
                "quote": quote,
                "messageChain": elements,
            },
        )

    async def send_temp_message(
        self,
        qq: int,
        group: int,
        chain: MessageChain,
        quote: Optional[int] = None,
    ) -> int:
        elements = validate_message_chain(chain)
        session = self._require()
        return await session.rpc.call_field(
            "POST",
            "/sendTempMessage",
            "messageId",
            json={
                "sessionKey": session.session_key,
                "qq": qq,
                "group": group,
                "quote": quote,
                "messageChain": elements,
            },
        )

    async def send_group_message(
        self,
        group: int,
        chain: MessageChain,
        quote: Optional[int] = None,
    ) -> int:
        elements = validate_message_chain(chain)
        session = self._require()
        return await session.rpc.call_field(
            "POST",
            "/sendGroupMessage",
            "messageId",
            json={
                "sessionKey": session.session_key,
                "group": group,
                "quote": quote,
                "messageChain": elements,
            },
        )

    async def recall(self, message_id: int) -> None:
        session = self._require()
        await session.rpc.call(
            "POST", "/recall", json={"sessionKey": session.session_key, "target": message_id}
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Images & voice
    # ─────────────────────────────────────────────────────────────────────────

    async def send_image_to_friend(self, qq: int, urls: Iterable[str]) -> list[str]:
        return await self._send_image_urls({"qq": qq}, urls)

    async def send_image_to_temp(self, qq: int, group: int, urls: Iterable[str]) -> list[str]:
        return await self._send_image_urls({"qq": qq, "group": group}, urls)

    async def send_image_to_group(self, group: int, urls: Iterable[str]) -> list[str]:
        return await self._send_image_urls({"group": group}, urls)

    async def _send_image_urls(self, target: dict[str, int], urls: Iterable[str]) -> list[str]:
        url_list = list(urls)
        if not url_list:
            raise ValueError("At least one image url is required")
        session = self._require()
        payload = await session.rpc.call_payload(
            "POST",
            "/sendImageMessage",
            json={"sessionKey": session.session_key, **target, "urls": url_list},
        )
        return list(payload)

    async def upload_image(self, target: UploadTarget, data: BinarySource) -> UploadedImage:
        """
        Prepare an image for later sending. `data` is raw bytes or a file path.

        PNG, JPEG and GIF are sent as-is; other formats are converted to PNG.
        Gateways up to 1.7.0 cannot take uploads: the image is served from
        the local ImageHost instead and the result carries only `url`.
        """
        session = self._require()
        capabilities = session.capabilities
        if Capability.IMAGE_URL_HOSTING not in capabilities:
            capabilities.require(Capability.UPLOAD_IMAGE)
        content, fmt = await asyncio.to_thread(normalize_image, await _read_binary(data))

        if Capability.IMAGE_URL_HOSTING in capabilities:
            url = self._hosted_images().register(content, f"image/{fmt}")
            log.debug("image.hosted", url=url, size=len(content))
            return UploadedImage(url=url)

        try:
            payload = await session.rpc.call_payload(
                "POST",
                "/uploadImage",
                data={"sessionKey": session.session_key, "type": UploadTarget(target).value},
                files={"img": (f"{uuid.uuid4().hex}.{fmt}", content, f"image/{fmt}")},
            )
        except InvalidOperationError:
            # Gateways that cannot take uploads answer with a non-JSON body
            raise CapabilityNotSupportedError(
                Capability.UPLOAD_IMAGE.value, str(session.capabilities.version)
            ) from None
        return UploadedImage.model_validate(payload)

    def _hosted_images(self) -> ImageHost:
        if self._image_host is None:
            self._image_host = ImageHost()
        return self._image_host

    async def upload_voice(self, target: UploadTarget, data: BinarySource) -> UploadedVoice:
        """Upload an AMR voice clip. Needs gateway 1.8.0 or later."""
        session = self._require()
        session.capabilities.require(Capability.UPLOAD_VOICE)
        content = await _read_binary(data)
        payload = await session.rpc.call_payload(
            "POST",
            "/uploadVoice",
            data={"sessionKey": session.session_key, "type": UploadTarget(target).value},
            files={"voice": (f"{uuid.uuid4().hex}.amr", content)},
        )
        return UploadedVoice.model_validate(payload)

    # ─────────────────────────────────────────────────────────────────────────
    # Console commands & managers
    # ─────────────────────────────────────────────────────────────────────────

    async def register_command(
        self,
        name: str,
        alias: Optional[Sequence[str]] = None,
        description: Optional[str] = None,
        usage: Optional[str] = None,
    ) -> None:
        session = self._require()
        await commands.register_command(
            session.rpc, session.auth_key, name, alias, description, usage
        )

    async def execute_command(self, name: str, *args: str) -> None:
        session = self._require()
        await commands.execute_command(session.rpc, session.auth_key, name, *args)

    async def get_managers(self, qq: Optional[int] = None) -> list[int]:
        """Managers of `qq`, defaulting to the bound bot account."""
        session = self._require()
        return await commands.get_managers(session.rpc, qq if qq is not None else session.account_id)

    # ─────────────────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────────────────

    def subscribe(self, channel: ChannelLike, handler: Handler) -> Handler:
        """Call handler(client, event) for every event on `channel`."""
        self._check_open()
        return self.subscribers.subscribe(channel, handler)

    def unsubscribe(self, channel: ChannelLike, handler: Handler) -> bool:
        return self.subscribers.unsubscribe(channel, handler)

    def on(self, channel: ChannelLike) -> Callable[[Handler], Handler]:
        """Decorator form of subscribe()."""

        def decorator(handler: Handler) -> Handler:
            return self.subscribe(channel, handler)

        return decorator

    def add_plugin(self, plugin: Plugin) -> Plugin:
        self._check_open()
        self.plugins.add(plugin)
        return plugin

    def remove_plugin(self, plugin: Plugin) -> bool:
        return self.plugins.remove(plugin)

    def on_dispatch_error(self, sink: ErrorSink) -> ErrorSink:
        """Register sink(channel, event, exc), called when a handler raises."""
        return self._chain.on_error(sink)
