# vigora/client/token_store.py
"""
Access/refresh token storage shared by every request of a client.

Clearing the pair is broadcast to subscribers ("auth cleared") so that
state derived from the login, like the current user, can reset itself.
"""
import json
import os
from pathlib import Path
from typing import Callable, List, Optional, Union

from loguru import logger

AuthClearedListener = Callable[[], None]


class TokenStore:
    """In-memory token pair."""

    def __init__(self, access_token: Optional[str] = None, refresh_token: Optional[str] = None):
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._listeners: List[AuthClearedListener] = []

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def refresh_token(self) -> Optional[str]:
        return self._refresh_token

    def set_access_token(self, token: str) -> None:
        self._access_token = token
        self._save()

    def set_refresh_token(self, token: str) -> None:
        self._refresh_token = token
        self._save()

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._save()

    def clear(self) -> None:
        """Drop both tokens and notify every subscriber once."""
        self._access_token = None
        self._refresh_token = None
        self._save()
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("auth-cleared listener {!r} failed", listener)

    def subscribe(self, listener: AuthClearedListener) -> Callable[[], None]:
        """Register for the auth-cleared broadcast; returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _save(self) -> None:
        pass


class FileTokenStore(TokenStore):
    """Token pair persisted as JSON, reloaded on construction."""

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path).expanduser()
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable token file {}", self.path)
            return
        self._access_token = data.get("access_token")
        self._refresh_token = data.get("refresh_token")

    def _save(self) -> None:
        if self._access_token is None and self._refresh_token is None:
            self.path.unlink(missing_ok=True)
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        payload = {"access_token": self._access_token, "refresh_token": self._refresh_token}
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh)
        os.replace(tmp, self.path)
