"""
miraiclient/gateway/events.py — Event Payloads & Discriminator Routing

Every inbound WebSocket frame is a JSON object whose "type" field names the
event. This module holds:

  EventChannel   the subscriber/plugin channel each event is delivered on
  *Event models  typed payloads (pydantic, camelCase aliases)
  UnknownEvent   raw payload for discriminators nobody registered
  EventRouter    registration table: discriminator → (model, channel)

The table is built once at import time (DEFAULT_ROUTES); an EventRouter is a
copy of it that can be extended per client without touching a central branch:

    router = EventRouter.default()
    router.register_route("NudgeEvent", NudgeEvent, "nudge")
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from miraiclient.exceptions import InvalidOperationError
from miraiclient.models import FriendInfo, GatewayModel, GroupInfo, MemberInfo


# ─────────────────────────────────────────────────────────────────────────────
# Channels
# ─────────────────────────────────────────────────────────────────────────────

class EventChannel(str, Enum):
    """Delivery channels. Subscribers and plugins are keyed by these values."""

    # Client-side notifications
    DISCONNECTED                     = "disconnected"
    UNKNOWN                          = "unknown"

    # Bot
    BOT_ONLINE                       = "bot_online"
    BOT_POSITIVE_OFFLINE             = "bot_positive_offline"
    BOT_KICKED_OFFLINE               = "bot_kicked_offline"
    BOT_DROPPED                      = "bot_dropped"
    BOT_RELOGIN                      = "bot_relogin"
    BOT_GROUP_PERMISSION_CHANGED     = "bot_group_permission_changed"
    BOT_MUTED                        = "bot_muted"
    BOT_UNMUTED                      = "bot_unmuted"
    BOT_JOINED_GROUP                 = "bot_joined_group"
    BOT_POSITIVE_LEAVE_GROUP         = "bot_positive_leave_group"
    BOT_KICKED_OUT                   = "bot_kicked_out"
    BOT_INVITED_JOIN_GROUP           = "bot_invited_join_group"

    # Command stream
    COMMAND_EXECUTED                 = "command_executed"

    # Friend
    FRIEND_MESSAGE                   = "friend_message"
    FRIEND_MESSAGE_REVOKED           = "friend_message_revoked"
    NEW_FRIEND_REQUEST               = "new_friend_request"

    # Group
    GROUP_MESSAGE                    = "group_message"
    GROUP_MESSAGE_REVOKED            = "group_message_revoked"
    GROUP_NAME_CHANGED               = "group_name_changed"
    GROUP_ENTRANCE_ANNOUNCEMENT_CHANGED = "group_entrance_announcement_changed"
    GROUP_MUTE_ALL_CHANGED           = "group_mute_all_changed"
    GROUP_ANONYMOUS_CHAT_CHANGED     = "group_anonymous_chat_changed"
    GROUP_CONFESS_TALK_CHANGED       = "group_confess_talk_changed"
    GROUP_MEMBER_INVITE_CHANGED      = "group_member_invite_changed"
    MEMBER_JOINED                    = "member_joined"
    MEMBER_POSITIVE_LEAVE            = "member_positive_leave"
    MEMBER_KICKED                    = "member_kicked"
    MEMBER_CARD_CHANGED              = "member_card_changed"
    MEMBER_SPECIAL_TITLE_CHANGED     = "member_special_title_changed"
    MEMBER_PERMISSION_CHANGED        = "member_permission_changed"
    MEMBER_MUTED                     = "member_muted"
    MEMBER_UNMUTED                   = "member_unmuted"
    MEMBER_JOIN_REQUEST              = "member_join_request"

    # Temp
    TEMP_MESSAGE                     = "temp_message"


ChannelLike = Union[EventChannel, str]


def channel_key(channel: ChannelLike) -> str:
    """Normalise an EventChannel or a custom channel name to its string key."""
    if isinstance(channel, EventChannel):
        return channel.value
    return str(channel)


# ─────────────────────────────────────────────────────────────────────────────
# Payload models
# ─────────────────────────────────────────────────────────────────────────────

class EventPayload(GatewayModel):
    type: str = ""


class BotEvent(EventPayload):
    qq: int


class BotGroupPermissionChangedEvent(EventPayload):
    origin: str
    current: str
    group: GroupInfo


class BotMutedEvent(EventPayload):
    duration_seconds: int
    operator: MemberInfo


class BotUnmutedEvent(EventPayload):
    operator: MemberInfo


class GroupEvent(EventPayload):
    group: GroupInfo


class ApplyEvent(EventPayload):
    """Friend requests, join requests and invitations. Pass to the client's /resp helpers."""

    event_id: int
    from_id: int
    group_id: int = 0
    group_name: str = ""
    nick: str = ""
    message: str = ""


class FriendMessageEvent(EventPayload):
    message_chain: list[dict[str, Any]]
    sender: FriendInfo


class GroupMessageEvent(EventPayload):
    message_chain: list[dict[str, Any]]
    sender: MemberInfo


class TempMessageEvent(EventPayload):
    message_chain: list[dict[str, Any]]
    sender: MemberInfo


class GroupMessageRevokedEvent(EventPayload):
    author_id: int
    message_id: int
    time: int
    group: GroupInfo
    operator: Optional[MemberInfo] = None


class FriendMessageRevokedEvent(EventPayload):
    author_id: int
    message_id: int
    time: int
    operator: int


class GroupStringChangedEvent(EventPayload):
    origin: str
    current: str
    group: GroupInfo
    operator: Optional[MemberInfo] = None


class GroupFlagChangedEvent(EventPayload):
    origin: bool
    current: bool
    group: GroupInfo
    operator: Optional[MemberInfo] = None


class MemberEvent(EventPayload):
    member: MemberInfo


class MemberKickedEvent(EventPayload):
    member: MemberInfo
    operator: Optional[MemberInfo] = None


class MemberStringChangedEvent(EventPayload):
    origin: str
    current: str
    member: MemberInfo
    operator: Optional[MemberInfo] = None


class MemberPermissionChangedEvent(EventPayload):
    origin: str
    current: str
    member: MemberInfo


class MemberMutedEvent(EventPayload):
    duration_seconds: int
    member: MemberInfo
    operator: Optional[MemberInfo] = None


class MemberUnmutedEvent(EventPayload):
    member: MemberInfo
    operator: Optional[MemberInfo] = None


class CommandExecutedEvent(EventPayload):
    name: str
    friend: Optional[FriendInfo] = None
    member: Optional[MemberInfo] = None
    args: list[dict[str, Any]] = []


@dataclass(frozen=True)
class UnknownEvent:
    """
    Payload for an unregistered discriminator.

    raw_json is the reassembled frame text exactly as received; data is the
    parsed JSON value.
    """

    raw_json: str
    data: Any

    @property
    def type(self) -> Optional[str]:
        return self.data.get("type") if isinstance(self.data, dict) else None


# ─────────────────────────────────────────────────────────────────────────────
# Routing
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DecodedEvent:
    """A tagged value: discriminator + target channel + typed payload."""

    discriminator: str
    channel: str
    payload: Any


@dataclass(frozen=True)
class EventRoute:
    discriminator: str
    channel: str
    decode: Callable[[dict[str, Any]], Any]


def _route(discriminator: str, model: type[GatewayModel], channel: ChannelLike) -> EventRoute:
    return EventRoute(discriminator, channel_key(channel), model.model_validate)


C = EventChannel

DEFAULT_ROUTES: tuple[EventRoute, ...] = (
    _route("BotOnlineEvent",                       BotEvent,                       C.BOT_ONLINE),
    _route("BotOfflineEventActive",                BotEvent,                       C.BOT_POSITIVE_OFFLINE),
    _route("BotOfflineEventForce",                 BotEvent,                       C.BOT_KICKED_OFFLINE),
    _route("BotOfflineEventDropped",               BotEvent,                       C.BOT_DROPPED),
    _route("BotReloginEvent",                      BotEvent,                       C.BOT_RELOGIN),
    _route("BotInvitedJoinGroupRequestEvent",      ApplyEvent,                     C.BOT_INVITED_JOIN_GROUP),
    _route("FriendMessage",                        FriendMessageEvent,             C.FRIEND_MESSAGE),
    _route("GroupMessage",                         GroupMessageEvent,              C.GROUP_MESSAGE),
    _route("TempMessage",                          TempMessageEvent,               C.TEMP_MESSAGE),
    _route("GroupRecallEvent",                     GroupMessageRevokedEvent,       C.GROUP_MESSAGE_REVOKED),
    _route("FriendRecallEvent",                    FriendMessageRevokedEvent,      C.FRIEND_MESSAGE_REVOKED),
    _route("BotGroupPermissionChangeEvent",        BotGroupPermissionChangedEvent, C.BOT_GROUP_PERMISSION_CHANGED),
    _route("BotMuteEvent",                         BotMutedEvent,                  C.BOT_MUTED),
    _route("BotUnmuteEvent",                       BotUnmutedEvent,                C.BOT_UNMUTED),
    _route("BotJoinGroupEvent",                    GroupEvent,                     C.BOT_JOINED_GROUP),
    _route("BotLeaveEventActive",                  GroupEvent,                     C.BOT_POSITIVE_LEAVE_GROUP),
    _route("BotLeaveEventKick",                    GroupEvent,                     C.BOT_KICKED_OUT),
    _route("GroupNameChangeEvent",                 GroupStringChangedEvent,        C.GROUP_NAME_CHANGED),
    _route("GroupEntranceAnnouncementChangeEvent", GroupStringChangedEvent,        C.GROUP_ENTRANCE_ANNOUNCEMENT_CHANGED),
    _route("GroupMuteAllEvent",                    GroupFlagChangedEvent,          C.GROUP_MUTE_ALL_CHANGED),
    _route("GroupAllowAnonymousChatEvent",         GroupFlagChangedEvent,          C.GROUP_ANONYMOUS_CHAT_CHANGED),
    _route("GroupAllowConfessTalkEvent",           GroupFlagChangedEvent,          C.GROUP_CONFESS_TALK_CHANGED),
    _route("GroupAllowMemberInviteEvent",          GroupFlagChangedEvent,          C.GROUP_MEMBER_INVITE_CHANGED),
    _route("MemberJoinEvent",                      MemberEvent,                    C.MEMBER_JOINED),
    _route("MemberLeaveEventKick",                 MemberKickedEvent,              C.MEMBER_KICKED),
    _route("MemberLeaveEventQuit",                 MemberEvent,                    C.MEMBER_POSITIVE_LEAVE),
    _route("MemberCardChangeEvent",                MemberStringChangedEvent,       C.MEMBER_CARD_CHANGED),
    _route("MemberSpecialTitleChangeEvent",        MemberStringChangedEvent,       C.MEMBER_SPECIAL_TITLE_CHANGED),
    _route("MemberPermissionChangeEvent",          MemberPermissionChangedEvent,   C.MEMBER_PERMISSION_CHANGED),
    _route("MemberMuteEvent",                      MemberMutedEvent,               C.MEMBER_MUTED),
    _route("MemberUnmuteEvent",                    MemberUnmutedEvent,             C.MEMBER_UNMUTED),
    _route("NewFriendRequestEvent",                ApplyEvent,                     C.NEW_FRIEND_REQUEST),
    _route("MemberJoinRequestEvent",               ApplyEvent,                     C.MEMBER_JOIN_REQUEST),
)

# Command-stream frames are all the same kind and are decoded without a lookup
COMMAND_ROUTE = _route("CommandExecuted", CommandExecutedEvent, C.COMMAND_EXECUTED)


def parse_frame(raw: bytes) -> tuple[str, Any]:
    """Decode a complete frame into (text, JSON value). Raises InvalidOperationError."""
    try:
        text = raw.decode("utf-8")
        return text, json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise InvalidOperationError(raw.decode("utf-8", errors="replace")) from None


class EventRouter:
    """
    Registration table mapping discriminator → (decode function, channel).

    Readers (the ingestion loops) look routes up without locking; register_route()
    swaps in a new dict.
    """

    def __init__(self, routes: tuple[EventRoute, ...] = ()) -> None:
        self._routes: dict[str, EventRoute] = {r.discriminator: r for r in routes}

    @classmethod
    def default(cls) -> "EventRouter":
        return cls(DEFAULT_ROUTES)

    def register_route(
        self,
        discriminator: str,
        model: type[GatewayModel],
        channel: ChannelLike,
    ) -> EventRoute:
        """Add or replace the route for a discriminator."""
        route = _route(discriminator, model, channel)
        routes = dict(self._routes)
        routes[discriminator] = route
        self._routes = routes
        return route

    def route_for(self, discriminator: str) -> Optional[EventRoute]:
        return self._routes.get(discriminator)

    def __contains__(self, discriminator: object) -> bool:
        return discriminator in self._routes

    def __len__(self) -> int:
        return len(self._routes)

    # ── Frame decoders (used by the ingestion loops) ──────────────────────────

    def decode(self, raw: bytes) -> DecodedEvent:
        """
        Decode one complete events-stream frame.

        Unregistered discriminators yield an UnknownEvent on the UNKNOWN channel
        with the frame text untouched. A frame that is not a JSON object with a
        string "type" is a protocol violation.
        """
        text, data = parse_frame(raw)
        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            raise InvalidOperationError(text)
        discriminator = data["type"]
        route = self._routes.get(discriminator)
        if route is None:
            return DecodedEvent(discriminator, EventChannel.UNKNOWN.value, UnknownEvent(text, data))
        return DecodedEvent(discriminator, route.channel, route.decode(data))

    def decode_command(self, raw: bytes) -> DecodedEvent:
        """Decode one command-stream frame."""
        text, data = parse_frame(raw)
        if not isinstance(data, dict):
            raise InvalidOperationError(text)
        return DecodedEvent(COMMAND_ROUTE.discriminator, COMMAND_ROUTE.channel, COMMAND_ROUTE.decode(data))
