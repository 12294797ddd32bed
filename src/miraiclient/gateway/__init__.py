"""
gateway/ — WebSocket event streams: frame reassembly, discriminator routing
and the per-stream ingestion loops.
"""

from miraiclient.gateway.events import (
    DecodedEvent,
    EventChannel,
    EventRoute,
    EventRouter,
    UnknownEvent,
)
from miraiclient.gateway.frames import FrameAssembler
from miraiclient.gateway.ingestion import COMMAND_STREAM, EVENTS_STREAM, EventIngestionLoop

__all__ = [
    "COMMAND_STREAM",
    "DecodedEvent",
    "EVENTS_STREAM",
    "EventChannel",
    "EventIngestionLoop",
    "EventRoute",
    "EventRouter",
    "FrameAssembler",
    "UnknownEvent",
]
