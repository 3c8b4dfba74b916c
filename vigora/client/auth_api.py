# vigora/client/auth_api.py
from typing import Optional

import httpx

from vigora.client.http import ApiClient
from vigora.schemas.auth import (
    AuthResponse,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    QrCodeRequest,
    QrGenerateResponse,
    QrPollResponse,
    QrScanRequest,
    QrStartResponse,
    RefreshRequest,
    RefreshResponse,
)
from vigora.schemas.user import UserCreate, UserRead

# poll answers REJECTED with 403 and EXPIRED with 410, both with a status body
_POLL_STATUS_CODES = {403, 410}


def _json(response: httpx.Response) -> dict:
    response.raise_for_status()
    return response.json()


class AuthApi:
    """Typed calls to the auth and QR login endpoints."""

    def __init__(self, client: ApiClient):
        self.client = client

    async def login(self, email_or_username: str, password: str) -> AuthResponse:
        body = LoginRequest(email_or_username=email_or_username, password=password)
        response = await self.client.post("/auth/login", json=body.model_dump(by_alias=True))
        return AuthResponse.model_validate(_json(response))

    async def register(
        self, username: str, email: str, password: str, first_name: str, last_name: str
    ) -> AuthResponse:
        body = UserCreate(
            username=username, email=email, password=password, first_name=first_name, last_name=last_name
        )
        response = await self.client.post("/auth/register", json=body.model_dump(by_alias=True, mode="json"))
        return AuthResponse.model_validate(_json(response))

    async def refresh(self, refresh_token: str) -> RefreshResponse:
        body = RefreshRequest(refresh_token=refresh_token)
        # a dead refresh token must not trigger the interceptor's own refresh
        response = await self.client.raw_post("/auth/refresh", json=body.model_dump(by_alias=True))
        return RefreshResponse.model_validate(_json(response))

    async def me(self) -> UserRead:
        return UserRead.model_validate(_json(await self.client.get("/users/me")))

    async def logout(self, refresh_token: Optional[str] = None) -> None:
        body = LogoutRequest(refresh_token=refresh_token)
        _json(await self.client.post("/auth/logout", json=body.model_dump(by_alias=True)))

    # === QR login, flow A ===
    async def qr_start(self) -> QrStartResponse:
        return QrStartResponse.model_validate(_json(await self.client.post("/auth/qr/start")))

    async def qr_poll(self, code: str) -> QrPollResponse:
        response = await self.client.get("/auth/qr/poll", params={"code": code})
        if response.status_code in _POLL_STATUS_CODES:
            try:
                data = response.json()
            except ValueError:
                # not our status body (proxy error page); raise on the status below
                data = None
            if isinstance(data, dict) and "status" in data:
                return QrPollResponse.model_validate(data)
        return QrPollResponse.model_validate(_json(response))

    async def qr_approve(self, code: str) -> MessageResponse:
        body = QrCodeRequest(code=code).model_dump(by_alias=True)
        return MessageResponse.model_validate(_json(await self.client.post("/auth/qr/approve", json=body)))

    async def qr_reject(self, code: str) -> MessageResponse:
        body = QrCodeRequest(code=code).model_dump(by_alias=True)
        return MessageResponse.model_validate(_json(await self.client.post("/auth/qr/reject", json=body)))

    # === QR login, flow B ===
    async def qr_generate(self) -> QrGenerateResponse:
        return QrGenerateResponse.model_validate(_json(await self.client.post("/auth/qr/generate")))

    async def qr_scan_login(self, token: str) -> AuthResponse:
        body = QrScanRequest(token=token).model_dump(by_alias=True)
        return AuthResponse.model_validate(_json(await self.client.post("/auth/qr/scan-login", json=body)))
