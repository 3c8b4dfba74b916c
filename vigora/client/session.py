# vigora/client/session.py
import asyncio
from typing import Callable, Optional

import httpx
from loguru import logger

from vigora.client.auth_api import AuthApi
from vigora.client.qr_poller import QrLoginPoller
from vigora.models.qr_login import QrLoginStatus
from vigora.schemas.auth import AuthResponse, QrGenerateResponse, QrPollResponse, QrStartResponse, RefreshResponse
from vigora.schemas.user import UserRead


class IncompleteAuthResponse(ValueError):
    """An auth payload without user or tokens; never applied."""


class AuthSession:
    """
    Logged-in state of one client: the current user plus the token pair in
    the client's token store. Tokens cleared anywhere (refresh failure,
    persistent 401) reset the user through the store's broadcast.
    """

    def __init__(self, api: AuthApi, *, poll_interval: Optional[float] = None):
        self.api = api
        self.tokens = api.client.tokens
        self.user: Optional[UserRead] = None
        self.displayed_qr: Optional[QrGenerateResponse] = None
        self.poll_interval = poll_interval
        self._poller: Optional[QrLoginPoller] = None
        self._unsubscribe = self.tokens.subscribe(self._on_tokens_cleared)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user and self.tokens.access_token)

    def _on_tokens_cleared(self) -> None:
        self.user = None
        self.displayed_qr = None

    def apply_auth_response(self, response: AuthResponse) -> UserRead:
        if not (response.user and response.access_token and response.refresh_token):
            raise IncompleteAuthResponse("auth response lacks user or tokens")
        self.tokens.set_tokens(response.access_token, response.refresh_token)
        self.user = response.user
        return self.user

    async def login(self, email_or_username: str, password: str) -> UserRead:
        return self.apply_auth_response(await self.api.login(email_or_username, password))

    async def register(self, username: str, email: str, password: str, first_name: str, last_name: str) -> UserRead:
        response = await self.api.register(username, email, password, first_name, last_name)
        return self.apply_auth_response(response)

    def logout(self) -> None:
        self.cancel_qr_login()
        self.user = None
        self.tokens.clear()

    async def refresh_session(self) -> Optional[UserRead]:
        stored_refresh = self.tokens.refresh_token
        if not stored_refresh:
            self.logout()
            return None
        response: RefreshResponse = await self.api.refresh(stored_refresh)
        # apply the new pair before /users/me so that call carries it
        self.tokens.set_tokens(response.access_token, response.refresh_token)
        user = response.user or await self.api.me()
        return self.apply_auth_response(
            AuthResponse(user=user, access_token=response.access_token, refresh_token=response.refresh_token)
        )

    async def restore(self) -> Optional[UserRead]:
        """Resume a stored session; any failure logs out."""
        if not self.tokens.refresh_token:
            return None
        try:
            return await self.refresh_session()
        except httpx.HTTPError as exc:
            logger.info("Stored session could not be restored: {}", exc)
            self.logout()
            return None

    # === QR login, flow A: this session asks, another approves ===
    async def login_with_qr(
        self,
        on_code: Optional[Callable[[QrStartResponse], None]] = None,
        **poller_kwargs,
    ) -> QrPollResponse:
        """
        Start a QR login, hand the code to `on_code` for display, and poll
        until it is approved, rejected or expired. APPROVED logs this
        session in. Returns the final poll answer; a cancelled login
        returns an EXPIRED answer without touching the session.
        """
        self.cancel_qr_login()
        started = await self.api.qr_start()
        if on_code is not None:
            on_code(started)

        poller_kwargs.setdefault("interval", self.poll_interval)
        poller_kwargs.setdefault("expires_at", started.expires_at)
        poller = self._poller = QrLoginPoller(self.api, started.code, **poller_kwargs)
        try:
            result = await poller.start()
        except asyncio.CancelledError:
            # cancel_qr_login() cancels the poll task; anything else propagates
            if not poller.cancelled:
                raise
            result = None
        finally:
            self._poller = None

        if result is None:
            return QrPollResponse(status=QrLoginStatus.EXPIRED, message="Cancelled")
        auth = result.auth_response()
        if auth is not None:
            self.apply_auth_response(auth)
        elif result.status is QrLoginStatus.APPROVED:
            logger.warning("QR login approved without a complete auth payload; ignored")
        return result

    def cancel_qr_login(self) -> None:
        if self._poller is not None:
            self._poller.cancel()

    async def approve_qr(self, code: str) -> str:
        return (await self.api.qr_approve(code)).message

    async def reject_qr(self, code: str) -> str:
        return (await self.api.qr_reject(code)).message

    # === QR login, flow B: this session shows a token, another scans it ===
    async def show_login_qr(self) -> QrGenerateResponse:
        """Generate a fresh token; it replaces whatever was displayed."""
        self.displayed_qr = await self.api.qr_generate()
        return self.displayed_qr

    async def scan_login(self, token: str) -> UserRead:
        return self.apply_auth_response(await self.api.qr_scan_login(token))

    def close(self) -> None:
        self.cancel_qr_login()
        self._unsubscribe()
