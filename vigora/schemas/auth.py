from datetime import datetime
from typing import Optional

from pydantic import Field

from vigora.models.qr_login import QrLoginStatus, TERMINAL_STATUSES
from vigora.schemas.user import CamelModel, UserRead


class LoginRequest(CamelModel):
    email_or_username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str


class AuthResponse(TokenPair):
    user: UserRead


class RefreshResponse(TokenPair):
    # older servers answer refresh without the user
    user: Optional[UserRead] = None


class MessageResponse(CamelModel):
    message: str


# === QR login ===
class QrStartResponse(CamelModel):
    code: str
    expires_at: datetime


class QrGenerateResponse(CamelModel):
    token: str
    expires_at: datetime


class QrCodeRequest(CamelModel):
    code: str = Field(..., min_length=1)


class QrScanRequest(CamelModel):
    token: str = Field(..., min_length=1)


class QrPollResponse(CamelModel):
    status: QrLoginStatus
    message: Optional[str] = None
    user: Optional[UserRead] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def auth_response(self) -> Optional[AuthResponse]:
        """Full auth payload of an APPROVED poll, None for anything partial."""
        if self.status is not QrLoginStatus.APPROVED:
            return None
        if not (self.user and self.access_token and self.refresh_token):
            return None
        return AuthResponse(user=self.user, access_token=self.access_token, refresh_token=self.refresh_token)
