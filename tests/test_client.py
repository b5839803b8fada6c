# tests/test_client.py
"""
WeamClient against an httpx.MockTransport that mimics the cookie auth flow:
requests carrying access_token=fresh succeed, anything else gets 401 until
POST /api/refresh hands out a fresh cookie.
"""

import asyncio

import httpx
import pytest

from weam.client import ApiRequestError, Unauthorized, WeamClient
from weam.singleflight import SingleFlight

BASE = "http://weam.test"


class FakeServer:
    def __init__(self, refresh_ok=True):
        self.refresh_ok = refresh_ok
        self.refresh_calls = 0
        self.puts = 0
        self.hold_put = None  # asyncio.Event, set by the test

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/refresh":
            self.refresh_calls += 1
            await asyncio.sleep(0.01)  # keep the refresh in flight for a moment
            if not self.refresh_ok:
                return httpx.Response(401, json={"error": "Invalid or expired refresh token"})
            return httpx.Response(
                200,
                json={"ok": True},
                headers={"set-cookie": "access_token=fresh; Path=/; HttpOnly"},
            )

        if path == "/api/bad":
            return httpx.Response(400, json={"error": "contractor and project are required"})

        if "access_token=fresh" not in request.headers.get("cookie", ""):
            return httpx.Response(401, json={"error": "Invalid or expired token"})

        if request.method == "PUT":
            self.puts += 1
            if self.hold_put is not None:
                await self.hold_put.wait()
            return httpx.Response(200, json={"updated": True})
        return httpx.Response(200, json=[{"id": 1}])


def _client(server, **kwargs):
    return WeamClient(BASE, transport=httpx.MockTransport(server), **kwargs)


def test_concurrent_401s_share_one_refresh():
    server = FakeServer()

    async def scenario():
        async with _client(server) as api:
            return await asyncio.gather(*(api.get("/api/projects") for _ in range(5)))

    results = asyncio.run(scenario())
    assert results == [[{"id": 1}]] * 5
    assert server.refresh_calls == 1


def test_failed_refresh_calls_hook_and_raises():
    server = FakeServer(refresh_ok=False)
    redirects = []

    async def scenario():
        async with _client(server, on_unauthorized=lambda: redirects.append("/login")) as api:
            await api.get("/api/projects")

    with pytest.raises(Unauthorized):
        asyncio.run(scenario())
    assert redirects == ["/login"]
    assert server.refresh_calls == 1


def test_login_page_mode_never_refreshes():
    server = FakeServer()
    redirects = []

    async def scenario():
        async with _client(server, login_page=True, on_unauthorized=lambda: redirects.append(1)) as api:
            await api.get("/api/projects")

    with pytest.raises(ApiRequestError) as exc:
        asyncio.run(scenario())
    assert exc.value.status_code == 401
    assert server.refresh_calls == 0
    assert redirects == []


def test_error_message_comes_from_body():
    server = FakeServer()

    async def scenario():
        async with _client(server) as api:
            await api.post("/api/bad", {"contractor": ""})

    with pytest.raises(ApiRequestError) as exc:
        asyncio.run(scenario())
    assert exc.value.status_code == 400
    assert exc.value.message == "contractor and project are required"


def test_update_project_field_skips_duplicate_in_flight():
    server = FakeServer()

    async def scenario():
        server.hold_put = asyncio.Event()
        async with _client(server) as api:
            await api.refresh()
            first = asyncio.ensure_future(api.update_project_field(7, "progress", 50))
            await asyncio.sleep(0.01)
            skipped = await api.update_project_field(7, "progress", 60)
            other_field = asyncio.ensure_future(api.update_project_field(7, "status", "done"))
            await asyncio.sleep(0.01)
            server.hold_put.set()
            return await first, skipped, await other_field

    first, skipped, other = asyncio.run(scenario())
    assert first == {"updated": True}
    assert skipped is None
    assert other == {"updated": True}
    assert server.puts == 2


def test_singleflight_coalesces_only_while_running():
    calls = []

    async def work():
        calls.append(1)
        await asyncio.sleep(0.01)
        return len(calls)

    async def scenario():
        flight = SingleFlight()
        together = await asyncio.gather(*(flight.do("k", work) for _ in range(3)))
        assert not flight.in_flight("k")
        later = await flight.do("k", work)
        return together, later

    together, later = asyncio.run(scenario())
    assert together == [1, 1, 1]
    assert later == 2
