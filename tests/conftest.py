# tests/conftest.py
import asyncio
import os

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# ---- test env, set before the app is imported ----
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")
os.environ.setdefault("ENV", "test")

from vigora.main import app  # noqa: E402
from vigora.db.session import engine  # noqa: E402
from vigora.models.base import Base  # noqa: E402
from vigora.client.auth_api import AuthApi  # noqa: E402
from vigora.client.http import ApiClient  # noqa: E402
from tests.helpers import API_BASE_URL, create_user  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    """create_all before the session, drop_all after (asyncio.run keeps loops apart)."""
    async def init_models():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    async def drop_models():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(init_models())
    yield
    asyncio.run(drop_models())


@pytest_asyncio.fixture
async def client():
    """AsyncClient mounted on the app through ASGITransport, no server needed."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest_asyncio.fixture
async def user():
    return await create_user()


@pytest_asyncio.fixture
async def api_factory():
    """Builds client-side AuthApi objects that talk to the app in-process."""
    clients = []

    def _make(tokens=None) -> AuthApi:
        api_client = ApiClient(API_BASE_URL, tokens, transport=ASGITransport(app=app))
        clients.append(api_client)
        return AuthApi(api_client)

    yield _make
    for api_client in clients:
        await api_client.aclose()
