"""
miraiclient/gateway/ingestion.py — Event Ingestion Loop

One long-running task per WebSocket stream:

  events   ws://host:port/all?sessionKey=...     every bot/friend/group event
  command  ws://host:port/command?authKey=...    command-execution events

Each iteration reads one complete message (FrameAssembler), decodes it through
the EventRouter and hands it to DispatchChain.spawn(). Dispatch is not awaited,
so a slow handler never stalls the socket.

Exit paths:
  - CancelledError (session scope cancelled) → exits silently.
  - Any other exception (socket fault, close, bad JSON, validation failure)
    → on_failure(loop, exc) is awaited once and the loop ends.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from miraiclient.gateway.events import DecodedEvent
from miraiclient.gateway.frames import FrameAssembler
from miraiclient.observability.logger import get_logger

if TYPE_CHECKING:
    from miraiclient.session.state import CancellationScope

log = get_logger(__name__)

EVENTS_STREAM = "events"
COMMAND_STREAM = "command"

Decoder = Callable[[bytes], DecodedEvent]
Connector = Callable[..., Any]
FailureHandler = Callable[["EventIngestionLoop", BaseException], Awaitable[None]]


class EventIngestionLoop:
    """
    Reader loop for one gateway stream.

    `connect` is a websockets-style connector: connect(url, max_size=...)
    returning an async context manager that yields the connection.
    """

    def __init__(
        self,
        name: str,
        url: str,
        decode: Decoder,
        dispatch: Callable[[str, Any], Any],
        connect: Connector,
        on_failure: FailureHandler,
        max_size: Optional[int] = None,
    ) -> None:
        self.name = name
        self._url = url
        self._decode = decode
        self._dispatch = dispatch
        self._connect = connect
        self._on_failure = on_failure
        self._max_size = max_size
        self._assembler = FrameAssembler()
        self._task: Optional[asyncio.Task] = None
        self.frames_received = 0

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def start(self, scope: CancellationScope) -> asyncio.Task:
        """Schedule run() as a task owned by the session's scope."""
        self._task = asyncio.create_task(self.run(), name=f"mirai-ingest-{self.name}")
        return scope.attach(self._task)

    async def run(self) -> None:
        try:
            async with self._connect(self._url, max_size=self._max_size) as ws:
                log.info("ingestion.opened", stream=self.name)
                while True:
                    raw = await self._assembler.receive(ws)
                    self.frames_received += 1
                    decoded = self._decode(raw)
                    log.debug(
                        "ingestion.frame",
                        stream=self.name,
                        type=decoded.discriminator,
                        size=len(raw),
                    )
                    self._dispatch(decoded.channel, decoded.payload)

        except asyncio.CancelledError:
            log.debug("ingestion.cancelled", stream=self.name)
            raise

        except Exception as exc:
            log.warning(
                "ingestion.failed",
                stream=self.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._on_failure(self, exc)

    def __repr__(self) -> str:
        return f"<EventIngestionLoop {self.name} frames={self.frames_received}>"
