# vigora/models/qr_login.py
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from vigora.models.base import Base


class QrLoginStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


TERMINAL_STATUSES = frozenset({QrLoginStatus.APPROVED, QrLoginStatus.REJECTED, QrLoginStatus.EXPIRED})


class QrLoginKind(str, enum.Enum):
    # code issued to an anonymous session, approved elsewhere
    START = "START"
    # token issued by a logged-in session, scanned elsewhere
    GENERATE = "GENERATE"


class QrLoginToken(Base):
    """
    Single-use QR login credential.
    PENDING -> APPROVED/REJECTED -> consumed (row deleted) or EXPIRED.
    """
    __tablename__ = "qr_login_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default=QrLoginKind.START.value)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False, default=QrLoginStatus.PENDING.value)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now
