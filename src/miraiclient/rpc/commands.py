"""
miraiclient/rpc/commands.py — Session-less Gateway Calls

These endpoints authenticate with the auth key (or nothing at all) rather
than a session key, so they can be used without connecting:

    async with httpx.AsyncClient() as http:
        rpc = RpcInvoker(http, endpoint.base_url)
        print(await get_version(rpc))
        await register_command(rpc, endpoint.auth_key, "ping", description="health check")

MiraiClient exposes the same calls bound to its current session.
"""

from __future__ import annotations

from typing import Optional, Sequence

from miraiclient.exceptions import TargetNotFoundError, UnknownResponseError
from miraiclient.rpc.invoker import RpcInvoker
from miraiclient.session.capabilities import ServerVersion


async def get_version(rpc: RpcInvoker) -> ServerVersion:
    """GET /about → the gateway plugin version."""
    data = await rpc.call_data("GET", "/about")
    version = data.get("version") if isinstance(data, dict) else None
    if not isinstance(version, str):
        raise UnknownResponseError(repr(data), code=0)
    try:
        return ServerVersion.parse(version)
    except ValueError:
        raise UnknownResponseError(version, code=0) from None


async def register_command(
    rpc: RpcInvoker,
    auth_key: str,
    name: str,
    alias: Optional[Sequence[str]] = None,
    description: Optional[str] = None,
    usage: Optional[str] = None,
) -> None:
    """Register a console command. `usage` is shown when the command fails."""
    if not name:
        raise ValueError("Command name must not be empty")
    await rpc.call(
        "POST",
        "/command/register",
        json={
            "authKey": auth_key,
            "name": name,
            "alias": list(alias or ()),
            "description": description,
            "usage": usage,
        },
    )


async def execute_command(rpc: RpcInvoker, auth_key: str, name: str, *args: str) -> None:
    """Run a console command. An unknown command raises TargetNotFoundError."""
    try:
        await rpc.call(
            "POST",
            "/command/send",
            json={"authKey": auth_key, "name": name, "args": list(args)},
        )
    except TargetNotFoundError as exc:
        raise TargetNotFoundError("command not found", code=exc.code, raw=exc.raw) from None


async def get_managers(rpc: RpcInvoker, qq: int) -> list[int]:
    """GET /managers: accounts allowed to manage the given bot."""
    return list(await rpc.call_payload("GET", "/managers", params={"qq": qq}))
