# vigora/api/endpoints/qr.py
"""
QR code login.

Flow A (start/poll/approve/reject): an anonymous session asks for a code,
shows it, and polls while a logged-in session approves or rejects it.

Flow B (generate/scan-login): a logged-in session generates a pre-approved
token, another device scans it and is logged in straight away.

Codes are single use: consuming one deletes its row, and only the request
whose DELETE removed the row gets the auth payload.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from vigora.api.endpoints.auth import build_auth_response, client_ip
from vigora.core.config import settings
from vigora.core.deps import get_current_user
from vigora.core.security import generate_qr_code
from vigora.db.session import get_db
from vigora.models.qr_login import QrLoginKind, QrLoginStatus, QrLoginToken
from vigora.models.users import User
from vigora.schemas.auth import (
    AuthResponse,
    MessageResponse,
    QrCodeRequest,
    QrGenerateResponse,
    QrPollResponse,
    QrScanRequest,
    QrStartResponse,
)
from vigora.services.rate_limit import check_limit_and_hit

router = APIRouter(tags=["qr"])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _aware(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


async def _find(db: AsyncSession, code: str, kind: QrLoginKind) -> QrLoginToken:
    result = await db.execute(
        select(QrLoginToken).where(QrLoginToken.code == code, QrLoginToken.kind == kind.value)
    )
    token = result.scalar_one_or_none()
    if token is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid code")
    return token


async def _mark_expired(db: AsyncSession, token: QrLoginToken) -> None:
    token.status = QrLoginStatus.EXPIRED.value
    await db.commit()


async def _consume(db: AsyncSession, token: QrLoginToken) -> bool:
    """Delete the token; False when another request consumed it first."""
    result = await db.execute(
        delete(QrLoginToken).where(
            QrLoginToken.id == token.id,
            QrLoginToken.status == QrLoginStatus.APPROVED.value,
        )
    )
    await db.commit()
    return (result.rowcount or 0) == 1


async def _active_user(db: AsyncSession, user_id: Optional[int]) -> Optional[User]:
    if user_id is None:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        return None
    return user


def _status_body(status_code: int, qr_status: QrLoginStatus, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": qr_status.value, "message": message})


# === Flow A ===
@router.post("/start", response_model=QrStartResponse, status_code=status.HTTP_201_CREATED)
async def start(request: Request, db: AsyncSession = Depends(get_db)):
    """Issue a PENDING code for an anonymous session."""
    allowed, retry_after = await check_limit_and_hit(client_ip(request), None, scope="qr-start")
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many QR login attempts. Please try again later.",
            headers={"Retry-After": str(retry_after)},
        )

    token = QrLoginToken(
        code=generate_qr_code(),
        kind=QrLoginKind.START.value,
        status=QrLoginStatus.PENDING.value,
        expires_at=_utcnow() + timedelta(seconds=settings.QR_START_EXPIRE_SECONDS),
    )
    db.add(token)
    await db.commit()
    return QrStartResponse(code=token.code, expires_at=_aware(token.expires_at))


@router.post("/approve", response_model=MessageResponse)
async def approve(
    payload: QrCodeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    token = await _find(db, payload.code, QrLoginKind.START)
    if token.is_expired(_utcnow()):
        await _mark_expired(db, token)
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Code expired")
    if token.status != QrLoginStatus.PENDING.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Code already {token.status}")

    token.user_id = current_user.id
    token.status = QrLoginStatus.APPROVED.value
    await db.commit()
    logger.info("QR login approved by user {}", current_user.id)
    return MessageResponse(message="Approved")


@router.post("/reject", response_model=MessageResponse)
async def reject(
    payload: QrCodeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    token = await _find(db, payload.code, QrLoginKind.START)
    if token.is_expired(_utcnow()):
        await _mark_expired(db, token)
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Code expired")
    if token.status != QrLoginStatus.PENDING.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Code already {token.status}")

    token.status = QrLoginStatus.REJECTED.value
    await db.commit()
    logger.info("QR login rejected by user {}", current_user.id)
    return MessageResponse(message="Rejected")


@router.get("/poll", response_model=QrPollResponse, response_model_exclude_none=True)
async def poll(code: str = Query(..., min_length=1), db: AsyncSession = Depends(get_db)):
    """
    Status of a START code. APPROVED carries the full auth payload and
    consumes the code; REJECTED answers 403 and EXPIRED answers 410.
    """
    token = await _find(db, code, QrLoginKind.START)

    if token.is_expired(_utcnow()) or token.status == QrLoginStatus.EXPIRED.value:
        if token.status != QrLoginStatus.EXPIRED.value:
            await _mark_expired(db, token)
        return _status_body(status.HTTP_410_GONE, QrLoginStatus.EXPIRED, "Code expired")

    if token.status == QrLoginStatus.PENDING.value:
        return QrPollResponse(status=QrLoginStatus.PENDING)

    if token.status == QrLoginStatus.REJECTED.value:
        return _status_body(status.HTTP_403_FORBIDDEN, QrLoginStatus.REJECTED, "Request rejected")

    user = await _active_user(db, token.user_id)
    if user is None:
        await _mark_expired(db, token)
        return _status_body(status.HTTP_410_GONE, QrLoginStatus.EXPIRED, "User no longer exists")

    if not await _consume(db, token):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid code")

    auth = build_auth_response(user)
    return QrPollResponse(
        status=QrLoginStatus.APPROVED,
        user=auth.user,
        access_token=auth.access_token,
        refresh_token=auth.refresh_token,
    )


# === Flow B ===
@router.post("/generate", response_model=QrGenerateResponse, status_code=status.HTTP_201_CREATED)
async def generate(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Pre-approved token for the caller; supersedes the caller's previous ones."""
    await db.execute(
        update(QrLoginToken)
        .where(
            QrLoginToken.user_id == current_user.id,
            QrLoginToken.kind == QrLoginKind.GENERATE.value,
            QrLoginToken.status.in_([QrLoginStatus.PENDING.value, QrLoginStatus.APPROVED.value]),
        )
        .values(status=QrLoginStatus.EXPIRED.value, updated_at=_utcnow())
    )

    token = QrLoginToken(
        code=generate_qr_code(),
        kind=QrLoginKind.GENERATE.value,
        user_id=current_user.id,
        status=QrLoginStatus.APPROVED.value,
        expires_at=_utcnow() + timedelta(seconds=settings.QR_GENERATE_EXPIRE_SECONDS),
    )
    db.add(token)
    await db.commit()
    return QrGenerateResponse(token=token.code, expires_at=_aware(token.expires_at))


@router.post("/scan-login", response_model=AuthResponse)
async def scan_login(payload: QrScanRequest, db: AsyncSession = Depends(get_db)):
    token = await _find(db, payload.token, QrLoginKind.GENERATE)

    if token.is_expired(_utcnow()):
        await _mark_expired(db, token)
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Token expired")
    if token.status != QrLoginStatus.APPROVED.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Token is {token.status}")

    user = await _active_user(db, token.user_id)
    if user is None:
        await _mark_expired(db, token)
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="User not found")

    if not await _consume(db, token):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid token")

    logger.info("QR scan login for user {}", user.id)
    return build_auth_response(user)
