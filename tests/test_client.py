"""Async API client: shared token refresh and profile bootstrap."""

import asyncio

import httpx
import pytest

from barstock.client import ApiError, BarStockClient


class FakeServer:
    """Accepts only the current token; everything else is a 401."""

    def __init__(self, valid_token="t2"):
        self.valid_token = valid_token
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"Bearer {self.valid_token}":
            return httpx.Response(401, json={"error": "Token expired"})
        return httpx.Response(200, json={"ok": True, "team": request.headers.get("X-Team-Id")})


class Refresher:
    def __init__(self, new_token="t2", fail=False):
        self.new_token = new_token
        self.fail = fail
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(0.01)
        if self.fail:
            raise RuntimeError("refresh token revoked")
        return self.new_token


def _client(handler, refresher, **kwargs):
    return BarStockClient(
        "http://api.test", "t1", refresher, transport=httpx.MockTransport(handler), **kwargs,
    )


class TestTokenRefresh:
    def test_concurrent_401s_share_one_refresh(self):
        server = FakeServer()
        refresher = Refresher()

        async def scenario():
            async with _client(server, refresher) as api:
                return await asyncio.gather(*(api.request("GET", "/api/products") for _ in range(5)))

        results = asyncio.run(scenario())

        assert refresher.calls == 1
        assert all(r["ok"] for r in results)
        # Five rejected attempts plus five retries
        assert len(server.requests) == 10

    def test_request_after_refresh_uses_new_token(self):
        server = FakeServer()
        refresher = Refresher()

        async def scenario():
            async with _client(server, refresher) as api:
                await api.request("GET", "/api/products")
                await api.request("GET", "/api/stock")
                return api.token

        assert asyncio.run(scenario()) == "t2"
        assert refresher.calls == 1
        assert len(server.requests) == 3

    def test_only_one_retry(self):
        server = FakeServer(valid_token="never")
        refresher = Refresher()

        async def scenario():
            async with _client(server, refresher) as api:
                await api.request("GET", "/api/products")

        with pytest.raises(ApiError) as exc:
            asyncio.run(scenario())

        assert exc.value.status == 401
        assert exc.value.message == "Token expired"
        assert refresher.calls == 1
        assert len(server.requests) == 2

    def test_failed_refresh_surfaces_as_401(self):
        server = FakeServer()
        refresher = Refresher(fail=True)

        async def scenario():
            async with _client(server, refresher) as api:
                await api.request("GET", "/api/products")

        with pytest.raises(ApiError) as exc:
            asyncio.run(scenario())

        assert exc.value.status == 401

    def test_other_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404, json={"error": "Product not found"})

        refresher = Refresher()

        async def scenario():
            async with _client(handler, refresher) as api:
                await api.request("GET", "/api/products/9")

        with pytest.raises(ApiError, match="Product not found"):
            asyncio.run(scenario())
        assert len(calls) == 1
        assert refresher.calls == 0

    def test_team_header_sent(self):
        server = FakeServer(valid_token="t1")

        async def scenario():
            async with _client(server, Refresher(), team_id=7) as api:
                return await api.request("GET", "/api/products")

        assert asyncio.run(scenario())["team"] == "7"


class TestProfileBootstrap:
    def test_creates_profile_when_missing(self):
        state = {"profile": None}

        def handler(request):
            if request.method == "GET":
                if state["profile"] is None:
                    return httpx.Response(404, json={"error": "Profile not found"})
                return httpx.Response(200, json=state["profile"])
            state["profile"] = {"user_id": "u1", "custom_id": "ABCD1234"}
            return httpx.Response(200, json={"success": True, "custom_id": "ABCD1234"})

        async def scenario():
            async with _client(handler, Refresher()) as api:
                return await api.get_or_create_profile()

        assert asyncio.run(scenario())["custom_id"] == "ABCD1234"

    def test_times_out_with_friendly_error(self):
        async def slow_handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

        async def scenario():
            async with _client(slow_handler, Refresher(), profile_timeout=0.05) as api:
                await api.get_or_create_profile()

        with pytest.raises(ApiError) as exc:
            asyncio.run(scenario())

        assert exc.value.status == 408
