"""
miraiclient/session/manager.py — Session Lifecycle

Owns the client's SessionSlot and drives one session through

    IDLE → CONNECTING → CONNECTED → RELEASING → RELEASED

connect()   single-flight: the caller that installs its session into the empty
            slot performs the handshake; every concurrent caller fails at once
            with AlreadyConnectedError.
release()   idempotent: whoever takes the session out of the slot tears it
            down; a second call finds the slot empty and does nothing.

Teardown cancels the session's loops (without waiting for them), sends a
best-effort POST /release and closes the session's httpx.AsyncClient.

A failing ingestion loop detaches the session, schedules teardown in the
background and delivers DisconnectedError on the "disconnected" channel.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Callable, Optional

import httpx

from miraiclient.config.settings import EndpointConfig
from miraiclient.dispatch.chain import DispatchChain
from miraiclient.exceptions import AlreadyConnectedError, DisconnectedError, NotConnectedError
from miraiclient.gateway.events import EventChannel, EventRouter
from miraiclient.gateway.ingestion import (
    COMMAND_STREAM,
    EVENTS_STREAM,
    Connector,
    EventIngestionLoop,
)
from miraiclient.models import SessionConfig
from miraiclient.observability.logger import bind_session, clear_session, get_logger
from miraiclient.rpc.commands import get_version
from miraiclient.rpc.invoker import RpcInvoker
from miraiclient.session.capabilities import CapabilitySet
from miraiclient.session.state import Session, SessionSlot, SessionState

log = get_logger(__name__)

HttpFactory = Callable[[EndpointConfig], httpx.AsyncClient]


class SessionManager:

    def __init__(
        self,
        chain: DispatchChain,
        router: EventRouter,
        http_factory: HttpFactory,
        ws_connect: Connector,
    ) -> None:
        self._chain = chain
        self._router = router
        self._http_factory = http_factory
        self._ws_connect = ws_connect
        self._slot = SessionSlot()
        self._background: set[asyncio.Task] = set()

    # ── Access ────────────────────────────────────────────────────────────────

    @property
    def current(self) -> Optional[Session]:
        return self._slot.get()

    def require(self) -> Session:
        """Return the connected session or raise NotConnectedError."""
        session = self._slot.get()
        if session is None or session.state is not SessionState.CONNECTED:
            raise NotConnectedError()
        return session

    def detach_if_current(self, session: Session) -> bool:
        """Take `session` out of the slot if it is still there. True if this call did it."""
        return self._slot.compare_and_set(session, None)

    # ── Connect ───────────────────────────────────────────────────────────────

    async def connect(
        self,
        endpoint: EndpointConfig,
        account_id: int,
        listen_commands: bool = False,
    ) -> Session:
        session = Session(
            endpoint=endpoint,
            account_id=account_id,
            listen_commands=listen_commands,
            state=SessionState.CONNECTING,
        )
        if not self._slot.compare_and_set(None, session):
            raise AlreadyConnectedError()

        log.info("session.connecting", base_url=endpoint.base_url, account_id=account_id)
        try:
            session.rpc = RpcInvoker(self._http_factory(endpoint), endpoint.base_url)
            await self._handshake(session)
            if self._slot.get() is not session:
                raise NotConnectedError("The session was released while connecting.")
            bind_session(account_id, session.session_key or "")
            self._start_loops(session)
            session.state = SessionState.CONNECTED
        except BaseException as exc:
            log.warning(
                "session.connect_failed",
                account_id=account_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            clear_session()
            self._slot.compare_and_set(session, None)
            self._release_in_background(session)
            raise

        log.info(
            "session.connected",
            account_id=account_id,
            version=str(session.capabilities.version) if session.capabilities else None,
            listen_commands=listen_commands,
        )
        return session

    async def _handshake(self, session: Session) -> None:
        rpc = session.rpc
        key = await rpc.call_field("POST", "/auth", "session", json={"authKey": session.auth_key})
        session.session_key = key
        await rpc.call("POST", "/verify", json={"sessionKey": key, "qq": session.account_id})

        session.capabilities = CapabilitySet.resolve(await get_version(rpc))

        config = SessionConfig.model_validate(
            await rpc.call_payload("GET", "/config", params={"sessionKey": key})
        )
        if config.enable_websocket is not True:
            await rpc.call(
                "POST",
                "/config",
                json={
                    "sessionKey": key,
                    "cacheSize": config.cache_size,
                    "enableWebsocket": True,
                },
            )

    def _start_loops(self, session: Session) -> None:
        endpoint = session.endpoint
        on_failure = functools.partial(self._on_stream_failure, session)

        events = EventIngestionLoop(
            EVENTS_STREAM,
            endpoint.ws_url("all", sessionKey=session.session_key),
            self._router.decode,
            self._chain.spawn,
            self._ws_connect,
            on_failure,
            max_size=endpoint.max_frame_size,
        )
        events.start(session.scope)

        if session.listen_commands:
            command = EventIngestionLoop(
                COMMAND_STREAM,
                endpoint.ws_url("command", authKey=session.auth_key),
                self._router.decode_command,
                self._chain.spawn,
                self._ws_connect,
                on_failure,
                max_size=endpoint.max_frame_size,
            )
            command.start(session.scope)

    # ── Release ───────────────────────────────────────────────────────────────

    async def release(self) -> bool:
        """Tear down the attached session. Returns False if there was none."""
        session = self._slot.exchange(None)
        if session is None:
            return False
        await self._teardown(session)
        clear_session()
        return True

    async def _teardown(self, session: Session) -> None:
        if not session.begin_teardown():
            return
        session.scope.cancel()
        try:
            if session.session_key is not None and session.rpc is not None:
                try:
                    await session.rpc.call(
                        "POST",
                        "/release",
                        json={"sessionKey": session.session_key, "qq": session.account_id},
                    )
                except Exception as exc:
                    log.warning(
                        "session.release_failed",
                        account_id=session.account_id,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
        finally:
            if session.rpc is not None:
                await session.rpc.http.aclose()
            session.state = SessionState.RELEASED
            log.info("session.released", account_id=session.account_id)

    def _release_in_background(self, session: Session) -> asyncio.Task:
        task = asyncio.create_task(
            self._teardown(session), name=f"mirai-release-{session.account_id}"
        )
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning("session.background_release_failed", error=str(exc))

    async def wait_background(self) -> None:
        """Wait for teardowns scheduled in the background."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ── Stream failure ────────────────────────────────────────────────────────

    async def _on_stream_failure(
        self,
        session: Session,
        loop: EventIngestionLoop,
        exc: BaseException,
    ) -> None:
        if not self.detach_if_current(session):
            return
        current = asyncio.current_task()
        if current is not None:
            session.scope.detach(current)
        log.warning("session.disconnected", account_id=session.account_id, stream=loop.name)
        self._release_in_background(session)

        error = DisconnectedError(loop.name, exc)
        error.__cause__ = exc
        await self._chain.notify(EventChannel.DISCONNECTED, error)
