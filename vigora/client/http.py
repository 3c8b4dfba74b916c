# vigora/client/http.py
"""
HTTP client with bearer auth and transparent access-token refresh.

A 401 on a request that was not replayed yet triggers one refresh:
  - IDLE: this request refreshes, stores the new pair, releases the
    queued requests and replays itself
  - REFRESHING: the request queues behind the running refresh and is
    replayed with its token, or fails with its own 401 if it failed
A 401 for a request sent with an already replaced token is replayed with
the current one instead of refreshing again. A failed refresh clears the
token store; a 401 after replay, or without a refresh token, clears it too.
"""
import asyncio
import enum
from collections import deque
from typing import Any, Deque, Optional

import httpx
from loguru import logger

from vigora.client.token_store import TokenStore
from vigora.core.config import settings
from vigora.schemas.auth import RefreshRequest, RefreshResponse

REFRESH_PATH = "/auth/refresh"


class RefreshState(str, enum.Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class ApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        tokens: Optional[TokenStore] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url or settings.API_BASE_URL
        self.tokens = tokens if tokens is not None else TokenStore()
        client_timeout = httpx.Timeout(timeout) if timeout is not None else httpx.Timeout(10.0)
        self._http = httpx.AsyncClient(base_url=self.base_url, transport=transport, timeout=client_timeout)
        # refresh goes through a bare client so it is never intercepted itself
        self._raw = httpx.AsyncClient(base_url=self.base_url, transport=transport, timeout=client_timeout)
        self.state = RefreshState.IDLE
        self._waiters: Deque["asyncio.Future[Optional[str]]"] = deque()

    @property
    def pending_waiters(self) -> int:
        return len(self._waiters)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request. Non-401 responses come back untouched; an
        unrecoverable 401 raises httpx.HTTPStatusError.
        """
        request = self._http.build_request(method, url, **kwargs)
        token = self.tokens.access_token
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        return await self._send(request, retried=False)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def raw_post(self, url: str, **kwargs: Any) -> httpx.Response:
        """POST without bearer auth or 401 handling."""
        return await self._raw.post(url, **kwargs)

    async def _send(self, request: httpx.Request, *, retried: bool) -> httpx.Response:
        response = await self._http.send(request)
        if response.status_code != 401:
            return response

        if not retried and self.tokens.refresh_token:
            return await self._recover(request, response)

        logger.info("401 on {} {} cannot be recovered, clearing tokens", request.method, request.url.path)
        self.tokens.clear()
        response.raise_for_status()
        return response

    async def _recover(self, request: httpx.Request, response: httpx.Response) -> httpx.Response:
        if self.state is RefreshState.REFRESHING:
            waiter: "asyncio.Future[Optional[str]]" = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            token = await waiter
            if token is None:
                response.raise_for_status()
            return await self._replay(request, token)

        current = self.tokens.access_token
        if current and request.headers.get("Authorization") != f"Bearer {current}":
            # sent with an older token that was refreshed meanwhile
            return await self._replay(request, current)

        self.state = RefreshState.REFRESHING
        try:
            token = await self._refresh_access_token()
        except Exception as exc:
            logger.warning("Token refresh failed: {}", exc)
            self._release(None)
            self.tokens.clear()
            raise
        finally:
            self.state = RefreshState.IDLE
            # no-op unless the refresh was cancelled
            self._release(None)

        if token is None:
            self.tokens.clear()
            response.raise_for_status()
        return await self._replay(request, token)

    async def _replay(self, request: httpx.Request, token: str) -> httpx.Response:
        request.headers["Authorization"] = f"Bearer {token}"
        return await self._send(request, retried=True)

    async def _refresh_access_token(self) -> Optional[str]:
        refresh_token = self.tokens.refresh_token
        if not refresh_token:
            return None
        body = RefreshRequest(refresh_token=refresh_token).model_dump(by_alias=True)
        response = await self.raw_post(REFRESH_PATH, json=body)
        response.raise_for_status()
        data = RefreshResponse.model_validate(response.json())
        self.tokens.set_tokens(data.access_token, data.refresh_token)
        self._release(data.access_token)
        return data.access_token

    def _release(self, token: Optional[str]) -> None:
        """Resolve queued requests in arrival order."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(token)

    async def aclose(self) -> None:
        await self._http.aclose()
        await self._raw.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
