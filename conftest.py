"""
Shared test fixtures.

  - MIRAI_* environment variables and .env loading are isolated so Settings()
    only sees what a test provides.
  - FakeGateway answers httpx requests through httpx.MockTransport and records
    every request it receives.
  - FakeConnector stands in for websockets' connect(); each stream gets a
    FakeWebSocket whose recv_streaming() yields queued fragments.
"""
from __future__ import annotations

import asyncio
import contextlib
import json
from typing import Any, Callable, Optional, Union

import httpx
import structlog
import pytest

_MIRAI_ENV_VARS = [
    "MIRAI_AUTH_KEY",
    "MIRAI_ACCOUNT_ID",
    "MIRAI_CONFIG",
    "MIRAI_LISTEN_COMMANDS",
    "MIRAI_ENDPOINT__HOST",
    "MIRAI_ENDPOINT__PORT",
    "MIRAI_ENDPOINT__AUTH_KEY",
    "MIRAI_LOGGING__LEVEL",
]


@pytest.fixture(autouse=True)
def _isolate_mirai_env(monkeypatch):
    """Clear MIRAI_* variables and stop Settings from reading a local .env."""
    structlog.contextvars.clear_contextvars()
    for var in _MIRAI_ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    import miraiclient.config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        env_prefix="MIRAI_",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
    monkeypatch.setattr(settings_module, "_singleton", None)


# ─────────────────────────────────────────────────────────────────────────────
# HTTP
# ─────────────────────────────────────────────────────────────────────────────

Reply = Union[dict, list, str, Callable[[httpx.Request], Any]]


class FakeGateway:
    """Canned replies keyed by (method, path). A str reply is sent as a non-JSON body."""

    def __init__(self, version: str = "1.8.4") -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Reply] = {
            ("POST", "/auth"): {"code": 0, "session": "S"},
            ("POST", "/verify"): {"code": 0, "msg": "success"},
            ("POST", "/release"): {"code": 0, "msg": "success"},
            ("GET", "/about"): {"code": 0, "data": {"version": version}},
            ("GET", "/config"): {"cacheSize": 4096, "enableWebsocket": True},
            ("POST", "/config"): {"code": 0, "msg": "success"},
        }

    def reply(self, method: str, path: str, body: Reply) -> None:
        self.routes[(method, path)] = body

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = self.routes.get((request.method, request.url.path), {"code": 0})
        if callable(body):
            body = body(request)
        if isinstance(body, httpx.Response):
            return body
        if isinstance(body, str):
            return httpx.Response(200, text=body)
        return httpx.Response(200, json=body)

    def factory(self, endpoint) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def last_json(self, method: str, path: str) -> dict:
        return json.loads(self.calls(method, path)[-1].content)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


# ─────────────────────────────────────────────────────────────────────────────
# WebSocket
# ─────────────────────────────────────────────────────────────────────────────

class FakeWebSocket:
    """Each queued item is one logical message (a list of fragments) or an exception."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, *fragments: Union[str, bytes]) -> None:
        self._queue.put_nowait(list(fragments))

    def push_json(self, payload: Any) -> str:
        text = json.dumps(payload, ensure_ascii=False)
        self.push(text)
        return text

    def fail(self, exc: BaseException) -> None:
        self._queue.put_nowait(exc)

    async def recv_streaming(self):
        item = await self._queue.get()
        if isinstance(item, BaseException):
            raise item
        for fragment in item:
            yield fragment


class FakeConnector:
    """Drop-in for websockets.asyncio.client.connect."""

    def __init__(self) -> None:
        self.events = FakeWebSocket()
        self.command = FakeWebSocket()
        self.urls: list[str] = []
        self.max_sizes: list[Optional[int]] = []
        self.log_contexts: list[dict[str, Any]] = []

    def __call__(self, url: str, max_size: Optional[int] = None):
        self.urls.append(url)
        self.max_sizes.append(max_size)
        self.log_contexts.append(structlog.contextvars.get_contextvars())
        ws = self.command if "/command" in url else self.events
        return self._open(ws)

    @contextlib.asynccontextmanager
    async def _open(self, ws: FakeWebSocket):
        try:
            yield ws
        finally:
            ws.closed = True


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def endpoint():
    from miraiclient.config.settings import EndpointConfig
    return EndpointConfig(host="127.0.0.1", port=8080, auth_key="AUTH")


@pytest.fixture
def make_client(gateway, connector):
    from miraiclient.client import MiraiClient

    def _make(**kwargs) -> MiraiClient:
        return MiraiClient(http_factory=gateway.factory, ws_connect=connector, **kwargs)

    return _make


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run a few loop iterations."""
    for _ in range(rounds):
        await asyncio.sleep(0)
