"""
miraiclient/rpc/invoker.py — Remote Call Invoker

Issues one HTTP request against the gateway, parses the JSON envelope and
turns the status code into either a result or a typed failure.

The httpx.AsyncClient is injected: a session owns one for its lifetime,
session-less helpers (rpc/commands.py) borrow one from the caller. The
invoker never creates or closes a transport by itself.

Usage:
    async with httpx.AsyncClient() as http:
        rpc = RpcInvoker(http, "http://127.0.0.1:8080")
        key = await rpc.call_field("POST", "/auth", "session", json={"authKey": "..."})
        await rpc.call("POST", "/verify", json={"sessionKey": key, "qq": 10001})
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from miraiclient.observability.logger import get_logger
from miraiclient.rpc.envelope import ResponseEnvelope, parse_envelope

log = get_logger(__name__)


def _drop_none(payload: Optional[dict]) -> Optional[dict]:
    """Omit top-level null fields; the gateway treats absent and null differently."""
    if payload is None:
        return None
    return {k: v for k, v in payload.items() if v is not None}


class RpcInvoker:
    """
    Single call pattern for every remote operation:
    build request → send → parse JSON body → read integer status code.

    No retries. Transport errors (httpx.HTTPError) propagate unchanged;
    cancelling the calling task cancels the in-flight request.
    """

    def __init__(self, http: httpx.AsyncClient, base_url: str) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http

    # ── Raw send ──────────────────────────────────────────────────────────────

    async def send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        data: Optional[dict[str, Any]] = None,
        files: Optional[dict[str, Any]] = None,
    ) -> ResponseEnvelope:
        """Send one request and return the parsed envelope (no code check)."""
        url = f"{self._base_url}/{path.lstrip('/')}"
        log.debug("rpc.send", method=method, path=path)
        response = await self._http.request(
            method,
            url,
            params=_drop_none(params),
            json=_drop_none(json),
            data=data,
            files=files,
        )
        envelope = parse_envelope(response.text)
        log.debug("rpc.received", path=path, status=response.status_code, code=envelope.code)
        return envelope

    # ── Shaped calls ──────────────────────────────────────────────────────────

    async def call(self, method: str, path: str, **kwargs: Any) -> None:
        """Status-only call: nothing is returned on success."""
        envelope = await self.send(method, path, **kwargs)
        envelope.raise_for_code()

    async def call_data(self, method: str, path: str, **kwargs: Any) -> Any:
        """Status + data call: returns the "data" field (present only on success)."""
        return await self.call_field(method, path, "data", **kwargs)

    async def call_field(self, method: str, path: str, field: str, **kwargs: Any) -> Any:
        """Status + named field call, e.g. "session" from /auth or "messageId"."""
        envelope = await self.send(method, path, **kwargs)
        return envelope.field(field)

    async def call_payload(self, method: str, path: str, **kwargs: Any) -> Any:
        """Bare-payload call: list endpoints, /config and uploads."""
        envelope = await self.send(method, path, **kwargs)
        return envelope.payload()
