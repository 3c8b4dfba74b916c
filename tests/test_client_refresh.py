# tests/test_client_refresh.py
import asyncio
import json

import httpx
import pytest

from vigora.client.auth_api import AuthApi
from vigora.client.http import ApiClient, RefreshState
from vigora.client.session import AuthSession
from vigora.client.token_store import TokenStore

pytestmark = pytest.mark.asyncio

BASE_URL = "http://api.test/api"


class FakeBackend:
    """
    /api/data answers 200 only for the current access token; /api/auth/refresh
    answers with `refresh_status` once `wait_for_waiters` requests are queued.
    """

    def __init__(self, *, refresh_status: int = 200, wait_for_waiters: int = 0):
        self.valid_token = "new-access"
        self.refresh_status = refresh_status
        self.wait_for_waiters = wait_for_waiters
        self.refresh_calls = 0
        self.refresh_bodies = []
        self.data_calls = []
        self.client = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/auth/refresh":
            self.refresh_calls += 1
            self.refresh_bodies.append(json.loads(request.content))
            assert "Authorization" not in request.headers
            for _ in range(500):
                if self.client.pending_waiters >= self.wait_for_waiters:
                    break
                await asyncio.sleep(0)
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"detail": "Invalid refresh token"})
            return httpx.Response(200, json={"accessToken": "new-access", "refreshToken": "new-refresh"})

        auth = request.headers.get("Authorization")
        self.data_calls.append(auth)
        if request.url.path == "/api/broken":
            return httpx.Response(500, json={"detail": "Internal Server Error"})
        if auth == f"Bearer {self.valid_token}":
            return httpx.Response(200, json={"ok": True, "path": request.url.path})
        return httpx.Response(401, json={"detail": "Token expired"})


def make_client(backend: FakeBackend, tokens: TokenStore) -> ApiClient:
    client = ApiClient(BASE_URL, tokens, transport=httpx.MockTransport(backend))
    backend.client = client
    return client


async def test_attaches_bearer_token():
    backend = FakeBackend()
    tokens = TokenStore("new-access", "refresh")
    async with make_client(backend, tokens) as client:
        r = await client.get("/data")
    assert r.status_code == 200
    assert backend.data_calls == ["Bearer new-access"]
    assert backend.refresh_calls == 0


async def test_concurrent_401s_share_one_refresh():
    backend = FakeBackend(wait_for_waiters=2)
    tokens = TokenStore("old-access", "old-refresh")
    cleared = []
    tokens.subscribe(lambda: cleared.append(1))

    async with make_client(backend, tokens) as client:
        results = await asyncio.gather(*(client.get("/data") for _ in range(3)))
        assert client.state is RefreshState.IDLE
        assert client.pending_waiters == 0

    assert [r.status_code for r in results] == [200, 200, 200]
    assert backend.refresh_calls == 1
    assert backend.refresh_bodies == [{"refreshToken": "old-refresh"}]
    assert tokens.access_token == "new-access"
    assert tokens.refresh_token == "new-refresh"
    # three originals with the old token, three replays with the new one
    assert backend.data_calls.count("Bearer old-access") == 3
    assert backend.data_calls.count("Bearer new-access") == 3
    assert cleared == []


async def test_failed_refresh_clears_tokens_and_fails_everyone():
    backend = FakeBackend(refresh_status=400, wait_for_waiters=2)
    tokens = TokenStore("old-access", "old-refresh")
    cleared = []
    tokens.subscribe(lambda: cleared.append(1))

    async with make_client(backend, tokens) as client:
        results = await asyncio.gather(*(client.get("/data") for _ in range(3)), return_exceptions=True)
        assert client.state is RefreshState.IDLE
        assert client.pending_waiters == 0

    assert backend.refresh_calls == 1
    assert all(isinstance(r, httpx.HTTPStatusError) for r in results)
    statuses = sorted(r.response.status_code for r in results)
    # the refreshing request surfaces the refresh failure, queued ones their own 401
    assert statuses == [400, 401, 401]
    assert tokens.access_token is None
    assert tokens.refresh_token is None
    assert cleared == [1]
    # nobody was replayed
    assert backend.data_calls == ["Bearer old-access"] * 3


async def test_replayed_request_is_not_retried_again():
    backend = FakeBackend()
    backend.valid_token = "never-valid"
    tokens = TokenStore("old-access", "old-refresh")
    cleared = []
    tokens.subscribe(lambda: cleared.append(1))

    async with make_client(backend, tokens) as client:
        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await client.get("/data")

    assert exc_info.value.response.status_code == 401
    assert backend.refresh_calls == 1
    assert backend.data_calls == ["Bearer old-access", "Bearer new-access"]
    assert tokens.access_token is None
    assert cleared == [1]


async def test_non_401_passes_through_untouched():
    backend = FakeBackend()
    tokens = TokenStore("new-access", "refresh")
    cleared = []
    tokens.subscribe(lambda: cleared.append(1))

    async with make_client(backend, tokens) as client:
        r = await client.get("/broken")

    assert r.status_code == 500
    assert backend.refresh_calls == 0
    assert tokens.access_token == "new-access"
    assert tokens.refresh_token == "refresh"
    assert cleared == []


async def test_401_without_refresh_token_clears_and_raises():
    backend = FakeBackend()
    tokens = TokenStore("old-access", None)
    cleared = []
    tokens.subscribe(lambda: cleared.append(1))

    async with make_client(backend, tokens) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await client.get("/data")

    assert backend.refresh_calls == 0
    assert tokens.access_token is None
    assert cleared == [1]


async def test_anonymous_request_has_no_auth_header():
    backend = FakeBackend()
    async with make_client(backend, TokenStore()) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await client.get("/data")
    assert backend.data_calls == [None]


async def test_late_401_for_replaced_token_skips_second_refresh():
    backend = FakeBackend()
    tokens = TokenStore("old-access", "old-refresh")
    arrived = asyncio.Event()
    release = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        # /slow with the old token answers 401 only after /fast has refreshed
        if request.url.path == "/api/slow" and request.headers.get("Authorization") == "Bearer old-access":
            arrived.set()
            await release.wait()
            return httpx.Response(401, json={"detail": "Token expired"})
        return await backend(request)

    client = ApiClient(BASE_URL, tokens, transport=httpx.MockTransport(handler))
    backend.client = client
    async with client:
        slow = asyncio.ensure_future(client.get("/slow"))
        await asyncio.wait_for(arrived.wait(), timeout=5)
        assert (await client.get("/fast")).status_code == 200
        release.set()
        r = await asyncio.wait_for(slow, timeout=5)

    assert r.status_code == 200
    assert backend.refresh_calls == 1
    assert tokens.refresh_token == "new-refresh"


async def test_explicit_refresh_with_dead_token_is_sent_once():
    backend = FakeBackend(refresh_status=401)
    tokens = TokenStore("old-access", "dead-refresh")

    async with make_client(backend, tokens) as client:
        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await AuthApi(client).refresh("dead-refresh")
        assert exc_info.value.response.status_code == 401
        assert backend.refresh_calls == 1

        session = AuthSession(AuthApi(client))
        assert await session.restore() is None

    assert backend.refresh_calls == 2
    assert tokens.refresh_token is None
    assert tokens.access_token is None
