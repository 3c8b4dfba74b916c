# tests/test_rate_limit_monkeypatch.py
import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


async def _deny(*args, **kwargs):
    return False, 60


async def test_login_rate_limited_via_monkeypatch(client: AsyncClient, user, monkeypatch):
    # patch where the route looks it up; the route awaits it, so the fake is async
    monkeypatch.setattr("vigora.api.endpoints.auth.check_limit_and_hit", _deny, raising=True)

    r = await client.post("/api/auth/login", json={"emailOrUsername": user.username, "password": "MyStrongPass"})
    assert r.status_code == 429, r.text
    assert r.headers.get("retry-after") == "60"


async def test_qr_start_rate_limited_via_monkeypatch(client: AsyncClient, monkeypatch):
    monkeypatch.setattr("vigora.api.endpoints.qr.check_limit_and_hit", _deny, raising=True)

    r = await client.post("/api/auth/qr/start")
    assert r.status_code == 429
    assert r.headers.get("retry-after") == "60"


async def test_rate_limit_disabled_allows_everything():
    from vigora.services.rate_limit import check_limit_and_hit

    assert await check_limit_and_hit("127.0.0.1", "someone") == (True, 0)
