from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

import httpx

from lingaplink_csrf.csrf.client import TokenEndpointClient
from lingaplink_csrf.csrf.manager import TokenLifecycleManager
from lingaplink_csrf.csrf.store import MemorySessionStore

BASE_URL = "http://lingaplink.test"
TOKEN_URL = f"{BASE_URL}/api/auth/csrf-token"
REFRESH_URL = f"{BASE_URL}/api/auth/csrf-token/refresh"

NOW = 1_700_000_000_000
HOUR_MS = 3_600_000


class FakeClock:
    def __init__(self, now: int = NOW) -> None:
        self.now = int(now)

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += int(ms)


def token_payload(token: str, expiry: int, **extra: Any) -> dict[str, Any]:
    data = {
        "success": True,
        "csrfToken": token,
        "expiry": expiry,
        "headerName": "x-csrf-token",
        "cookieName": "__csrf_token",
    }
    data.update(extra)
    return data


@dataclass
class FakeTokenApi:
    """
    Scripted stand-in for the token endpoints.

    Each queue entry is an httpx.Response, a (status, json) tuple, or an exception
    to raise from the transport. When a queue runs dry the last entry repeats.
    """

    fetch_replies: list[Any] = field(default_factory=list)
    refresh_replies: list[Any] = field(default_factory=list)
    gate: asyncio.Event | None = None
    requests: list[httpx.Request] = field(default_factory=list)

    @property
    def fetch_calls(self) -> int:
        return sum(1 for r in self.requests if r.method == "GET")

    @property
    def refresh_calls(self) -> int:
        return sum(1 for r in self.requests if r.method == "POST")

    def refresh_bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if r.method == "POST"]

    def _next(self, replies: list[Any]) -> Any:
        assert replies, "no scripted reply"
        return replies.pop(0) if len(replies) > 1 else replies[0]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if request.method == "GET" and str(request.url) == TOKEN_URL:
            reply = self._next(self.fetch_replies)
        elif request.method == "POST" and str(request.url) == REFRESH_URL:
            reply = self._next(self.refresh_replies)
        else:
            return httpx.Response(404, json={"success": False, "message": "not found"})
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        status, body = reply
        return httpx.Response(status, json=body)

    def http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def make_manager(
    api: FakeTokenApi,
    *,
    clock: FakeClock | None = None,
    store: Any = None,
    auth: str | None = "Bearer session-abc",
    **kwargs: Any,
) -> TokenLifecycleManager:
    client = TokenEndpointClient(
        api.http(),
        token_url=TOKEN_URL,
        refresh_url=REFRESH_URL,
        auth_header=lambda: auth,
        owns_http=True,
    )
    return TokenLifecycleManager(
        client,
        store if store is not None else MemorySessionStore(),
        clock=clock or FakeClock(),
        **kwargs,
    )


def stored(token: str, expiry: int, **names: str) -> MemorySessionStore:
    return MemorySessionStore(
        {
            "csrf_token": token,
            "csrf_token_expiry": str(expiry),
            "csrf_header_name": names.get("header", "x-csrf-token"),
            "csrf_cookie_name": names.get("cookie", "__csrf_token"),
        }
    )
