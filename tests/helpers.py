# tests/helpers.py
import uuid
from typing import Optional

from httpx import AsyncClient

from vigora.core.security import hash_password
from vigora.db.session import AsyncSessionLocal
from vigora.models.users import User

API_BASE_URL = "http://testserver/api"
PASSWORD = "MyStrongPass"


async def create_user(
    username: Optional[str] = None,
    password: str = PASSWORD,
    *,
    is_active: bool = True,
    role: str = "CLIENT",
) -> User:
    """Seed a user straight into the DB; unique name unless one is given."""
    username = username or f"user_{uuid.uuid4().hex[:10]}"
    async with AsyncSessionLocal() as session:
        user = User(
            username=username,
            email=f"{username}@example.com",
            password_hash=hash_password(password),
            role=role,
            first_name="Test",
            last_name="User",
            is_active=is_active,
            token_version=1,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


async def login_pair(client: AsyncClient, identity: str, password: str = PASSWORD):
    r = await client.post("/api/auth/login", json={"emailOrUsername": identity, "password": password})
    assert r.status_code == 200, r.text
    data = r.json()
    return data["accessToken"], data["refreshToken"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
