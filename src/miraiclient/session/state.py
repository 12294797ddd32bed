"""
miraiclient/session/state.py — Session Data Model

Session            one live binding between the client and one bot account
SessionState       IDLE → CONNECTING → CONNECTED → RELEASING → RELEASED
CancellationScope  one stop signal shared by a session's background loops
SessionSlot        the client's single session reference, mutated only by
                   atomic compare-and-set / exchange
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from miraiclient.config.settings import EndpointConfig
from miraiclient.rpc.invoker import RpcInvoker
from miraiclient.session.capabilities import CapabilitySet


class SessionState(str, Enum):
    IDLE       = "idle"
    CONNECTING = "connecting"
    CONNECTED  = "connected"
    RELEASING  = "releasing"
    RELEASED   = "released"


class CancellationScope:
    """
    Stop signal shared by the ingestion loops of one session.

    cancel() is synchronous and does not wait for the tasks to finish;
    cancellation is cooperative and the loops exit on their own.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def tasks(self) -> frozenset[asyncio.Task]:
        return frozenset(self._tasks)

    def attach(self, task: asyncio.Task) -> asyncio.Task:
        """Put a task under this scope. A task attached after cancel() is cancelled at once."""
        if self._cancelled:
            task.cancel()
            return task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def detach(self, task: asyncio.Task) -> None:
        """Stop tracking a task without cancelling it."""
        self._tasks.discard(task)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        for task in list(self._tasks):
            task.cancel()


@dataclass(eq=False)
class Session:
    """
    Per-session identity and resources. Mutated only by SessionManager.

    session_key is meaningful only while state is CONNECTED.
    """

    endpoint: EndpointConfig
    account_id: int
    rpc: Optional[RpcInvoker] = None
    listen_commands: bool = False
    state: SessionState = SessionState.IDLE
    session_key: Optional[str] = None
    capabilities: Optional[CapabilitySet] = None
    scope: CancellationScope = field(default_factory=CancellationScope)

    @property
    def auth_key(self) -> str:
        return self.endpoint.auth_key

    @property
    def connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    def begin_teardown(self) -> bool:
        """Move to RELEASING. Returns False if teardown already started."""
        if self.state in (SessionState.RELEASING, SessionState.RELEASED):
            return False
        self.state = SessionState.RELEASING
        return True

    def __repr__(self) -> str:
        return f"<Session account={self.account_id} state={self.state.value}>"


class SessionSlot:
    """
    Holds at most one Session.

    Both mutators are atomic: the lock is never held across an await, so
    they are safe from coroutines on one loop and from other threads alike.
    """

    def __init__(self) -> None:
        self._session: Optional[Session] = None
        self._lock = threading.Lock()

    def get(self) -> Optional[Session]:
        return self._session

    def compare_and_set(self, expected: Optional[Session], new: Optional[Session]) -> bool:
        """Install `new` only if the slot currently holds `expected`."""
        with self._lock:
            if self._session is not expected:
                return False
            self._session = new
            return True

    def exchange(self, new: Optional[Session]) -> Optional[Session]:
        """Install `new` and return whatever the slot held before."""
        with self._lock:
            previous, self._session = self._session, new
            return previous
