"""
miraiclient/models.py — Gateway Data Contracts

Pydantic models for the JSON objects the gateway returns (friend/group/member
info, group config, session config, upload results) plus the enums used as
request parameters. Field names are snake_case in Python and camelCase on the
wire; unknown fields from newer gateway versions are kept, not rejected.

Message chains are passed through untouched as lists of dicts; the message
element catalog is not modelled here.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class GatewayModel(BaseModel):
    """Base for every model decoded from (or encoded to) gateway JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """camelCase dict with unset/None fields dropped."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ─────────────────────────────────────────────────────────────────────────────
# Contacts
# ─────────────────────────────────────────────────────────────────────────────

class GroupPermission(str, Enum):
    OWNER         = "OWNER"
    ADMINISTRATOR = "ADMINISTRATOR"
    MEMBER        = "MEMBER"


class FriendInfo(GatewayModel):
    id: int
    nickname: str = ""
    remark: str = ""


class GroupInfo(GatewayModel):
    id: int
    name: str = ""
    permission: Optional[GroupPermission] = None


class MemberInfo(GatewayModel):
    id: int
    member_name: str = ""
    permission: Optional[GroupPermission] = None
    group: Optional[GroupInfo] = None


# ─────────────────────────────────────────────────────────────────────────────
# Configuration objects
# ─────────────────────────────────────────────────────────────────────────────

class SessionConfig(GatewayModel):
    """GET/POST /config: message cache size and event-stream switch."""

    cache_size: Optional[int] = None
    enable_websocket: Optional[bool] = None


class GroupConfig(GatewayModel):
    """GET/POST /groupConfig. Leave a field as None to keep it unchanged."""

    name: Optional[str] = None
    announcement: Optional[str] = None
    confess_talk: Optional[bool] = None
    allow_member_invite: Optional[bool] = None
    auto_approve: Optional[bool] = None
    anonymous_chat: Optional[bool] = None


class MemberProfile(GatewayModel):
    """GET/POST /memberInfo: group card and special title."""

    name: Optional[str] = None
    special_title: Optional[str] = None


# ─────────────────────────────────────────────────────────────────────────────
# Uploads
# ─────────────────────────────────────────────────────────────────────────────

class UploadTarget(str, Enum):
    FRIEND = "friend"
    GROUP  = "group"
    TEMP   = "temp"


class UploadedImage(GatewayModel):
    image_id: Optional[str] = None
    url: Optional[str] = None
    path: Optional[str] = None

    def as_message(self) -> dict[str, Any]:
        """The Image message element referring to this upload."""
        return {"type": "Image", **self.to_wire()}


class UploadedVoice(GatewayModel):
    voice_id: Optional[str] = None
    url: Optional[str] = None
    path: Optional[str] = None

    def as_message(self) -> dict[str, Any]:
        return {"type": "Voice", **self.to_wire()}


# ─────────────────────────────────────────────────────────────────────────────
# Application responses (POST /resp/...)
# ─────────────────────────────────────────────────────────────────────────────

class FriendRequestAction(IntEnum):
    ACCEPT           = 0
    REJECT           = 1
    REJECT_AND_BLOCK = 2


class GroupRequestAction(IntEnum):
    ACCEPT           = 0
    REJECT           = 1
    IGNORE           = 2
    REJECT_AND_BLOCK = 3
    IGNORE_AND_BLOCK = 4
