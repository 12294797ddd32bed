"""
miraiclient — asyncio client for the mirai-api-http bot gateway.

    from miraiclient import EndpointConfig, EventChannel, MiraiClient

    async with MiraiClient() as client:
        await client.connect(EndpointConfig(auth_key="..."), account_id=10001)
"""

from miraiclient.client import MiraiClient
from miraiclient.config.settings import EndpointConfig, Settings, load_settings
from miraiclient.dispatch.plugins import Plugin
from miraiclient.gateway.events import EventChannel, UnknownEvent
from miraiclient.media.image_host import ImageHost
from miraiclient.models import (
    FriendRequestAction,
    GroupRequestAction,
    UploadTarget,
)
from miraiclient.observability.logger import setup_logging
from miraiclient.session.capabilities import Capability

__version__ = "0.1.0"

__all__ = [
    "Capability",
    "EndpointConfig",
    "EventChannel",
    "FriendRequestAction",
    "GroupRequestAction",
    "ImageHost",
    "MiraiClient",
    "Plugin",
    "Settings",
    "UnknownEvent",
    "UploadTarget",
    "load_settings",
    "setup_logging",
]
