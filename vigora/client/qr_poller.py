# vigora/client/qr_poller.py
import asyncio
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import httpx
from loguru import logger

from vigora.client.auth_api import AuthApi
from vigora.core.config import settings
from vigora.models.qr_login import QrLoginStatus
from vigora.schemas.auth import QrPollResponse

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]
StatusCallback = Callable[[QrPollResponse], None]


class QrLoginPoller:
    """
    Polls a QR login code until it reaches a terminal status.

    Every `interval` seconds the code is polled; the first APPROVED,
    REJECTED or EXPIRED answer ends the loop and is returned. HTTP, network
    and decoding errors are logged and polling goes on. `cancel()` stops the
    loop, in which case `run()` returns None. `sleep` and `clock` are
    injectable so tests can drive the loop without real time passing.
    """

    def __init__(
        self,
        api: AuthApi,
        code: str,
        *,
        interval: Optional[float] = None,
        expires_at: Optional[datetime] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.time,
        on_status: Optional[StatusCallback] = None,
    ):
        self.api = api
        self.code = code
        self.interval = settings.QR_POLL_INTERVAL_SECONDS if interval is None else interval
        self.expires_at = expires_at
        self.polls = 0
        self.result: Optional[QrPollResponse] = None
        self._sleep = sleep
        self._clock = clock
        self._on_status = on_status
        self._cancelled = False
        self._task: Optional["asyncio.Task[Optional[QrPollResponse]]"] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _past_deadline(self) -> bool:
        if self.expires_at is None:
            return False
        deadline = self.expires_at
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)
        return self._clock() >= deadline.timestamp()

    async def run(self) -> Optional[QrPollResponse]:
        while not self._cancelled:
            await self._sleep(self.interval)
            if self._cancelled:
                break
            if self._past_deadline():
                self.result = QrPollResponse(status=QrLoginStatus.EXPIRED, message="Code expired")
                return self.result

            self.polls += 1
            try:
                response = await self.api.qr_poll(self.code)
            except (httpx.HTTPError, ValueError) as exc:
                # unreadable answers (HTML error pages, bad payloads) count as transient
                logger.warning("QR poll failed for code {}: {}", self.code[:8], exc)
                continue

            if self._on_status is not None:
                self._on_status(response)
            if response.is_terminal:
                self.result = response
                return response
        return None

    def start(self) -> "asyncio.Task[Optional[QrPollResponse]]":
        if self._task is None:
            self._task = asyncio.ensure_future(self.run())
        return self._task

    def cancel(self) -> None:
        """Stop polling; no poll is issued after this call."""
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
