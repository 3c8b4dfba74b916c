# tests/test_cleanup.py
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from vigora.core.config import settings
from vigora.db.session import AsyncSessionLocal
from vigora.models.qr_login import QrLoginKind, QrLoginStatus, QrLoginToken
from vigora.models.token_blacklist import TokenBlacklist
from vigora.services.cleanup import run_housekeeping
from vigora.services.scheduler import run_cleanup_job

pytestmark = pytest.mark.asyncio


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _qr(expires_at: datetime) -> QrLoginToken:
    return QrLoginToken(
        code=uuid.uuid4().hex,
        kind=QrLoginKind.START.value,
        status=QrLoginStatus.EXPIRED.value,
        expires_at=expires_at,
    )


async def _exists(model, column, value) -> bool:
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(model).where(column == value))
        return result.scalar_one_or_none() is not None


async def test_housekeeping_purges_only_stale_rows(user):
    now = _now()
    expired_jti, live_jti = uuid.uuid4().hex, uuid.uuid4().hex
    stale = _qr(now - timedelta(minutes=settings.QR_RETENTION_MINUTES + 5))
    recent = _qr(now - timedelta(minutes=1))

    async with AsyncSessionLocal() as session:
        session.add_all([
            TokenBlacklist(jti=expired_jti, token_type="access", user_id=user.id,
                           reason="logout", expires_at=now - timedelta(minutes=1)),
            TokenBlacklist(jti=live_jti, token_type="refresh", user_id=user.id,
                           reason="logout", expires_at=now + timedelta(days=1)),
            stale,
            recent,
        ])
        await session.commit()
        stale_code, recent_code = stale.code, recent.code

        counts = await run_housekeeping(session)

    assert counts["blacklist"] >= 1
    assert counts["qr_tokens"] >= 1
    assert not await _exists(TokenBlacklist, TokenBlacklist.jti, expired_jti)
    assert await _exists(TokenBlacklist, TokenBlacklist.jti, live_jti)
    assert not await _exists(QrLoginToken, QrLoginToken.code, stale_code)
    # recently expired codes still answer EXPIRED on poll
    assert await _exists(QrLoginToken, QrLoginToken.code, recent_code)


async def test_cleanup_job_reports_counts():
    counts = await run_cleanup_job()
    assert set(counts) == {"blacklist", "qr_tokens"}
