# vigora/services/cleanup.py
from datetime import datetime, timedelta, timezone
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from vigora.core.config import settings
from vigora.models.token_blacklist import TokenBlacklist
from vigora.models.qr_login import QrLoginToken


def _utcnow() -> datetime:
    # stored timestamps are naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def cleanup_expired_blacklist(db: AsyncSession) -> int:
    """Delete blacklist rows whose token already expired; returns the count."""
    stmt = delete(TokenBlacklist).where(TokenBlacklist.expires_at < _utcnow())
    res = await db.execute(stmt)
    await db.commit()
    return res.rowcount or 0


async def purge_stale_qr_tokens(db: AsyncSession) -> int:
    """
    Delete QR login tokens expired for longer than QR_RETENTION_MINUTES.
    Recently expired rows stay so polls still answer EXPIRED instead of 404.
    """
    cutoff = _utcnow() - timedelta(minutes=settings.QR_RETENTION_MINUTES)
    res = await db.execute(delete(QrLoginToken).where(QrLoginToken.expires_at < cutoff))
    await db.commit()
    return res.rowcount or 0


async def run_housekeeping(db: AsyncSession) -> dict:
    return {
        "blacklist": await cleanup_expired_blacklist(db),
        "qr_tokens": await purge_stale_qr_tokens(db),
    }
