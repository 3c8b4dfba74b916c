# vigora/api/endpoints/auth.py
from typing import Optional, Tuple
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status, Header, Request
from jose import JWTError
from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from vigora.db.session import get_db
from vigora.models.users import User
from vigora.models.token_blacklist import TokenBlacklist
from vigora.core.deps import get_current_user, is_blacklisted
from vigora.core.security import (
    hash_password,
    verify_password,
    issue_token_pair,
    decode_refresh_token,
    try_decode_any,
)
from vigora.schemas.auth import AuthResponse, LoginRequest, LogoutRequest, RefreshRequest, RefreshResponse
from vigora.schemas.user import UserCreate, UserRead
from vigora.services.rate_limit import check_limit_and_hit, reset_success

router = APIRouter(tags=["auth"])


def client_ip(request: Request) -> str:
    return (request.client.host if request.client else "unknown") or "unknown"


def build_auth_response(user: User) -> AuthResponse:
    """Fresh token pair plus the sanitized user."""
    access_token, refresh_token = issue_token_pair(user.id, user.token_version, user.role)
    return AuthResponse(user=UserRead.from_user(user), access_token=access_token, refresh_token=refresh_token)


def _extract_jti_and_exp(token: str) -> Tuple[Optional[str], Optional[int], Optional[str]]:
    """(jti, exp, type) of any of our JWTs; exp in epoch seconds."""
    try:
        claims = try_decode_any(token)
    except JWTError:
        return None, None, None
    exp = claims.get("exp")
    if exp is not None and not isinstance(exp, int):
        exp = int(exp.timestamp()) if hasattr(exp, "timestamp") else None
    return claims.get("jti"), exp, claims.get("type")


async def _blacklist(db: AsyncSession, token: str, user_id: int, reason: str, default_type: str) -> None:
    jti, exp, typ = _extract_jti_and_exp(token)
    if jti and exp and not await is_blacklisted(db, jti):
        db.add(TokenBlacklist(
            jti=jti,
            token_type=typ or default_type,
            user_id=user_id,
            reason=reason,
            expires_at=datetime.fromtimestamp(exp, timezone.utc).replace(tzinfo=None),
        ))


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


async def _identity_taken(db: AsyncSession, email: str, username: str) -> bool:
    result = await db.execute(select(User.id).where(or_(User.email == email, User.username == username)))
    return result.first() is not None


# === Register ===
@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: UserCreate, db: AsyncSession = Depends(get_db)):
    """Create a CLIENT account and log it in."""
    email = payload.email.lower()
    conflict = HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email or username already exists")
    if await _identity_taken(db, email, payload.username):
        raise conflict

    user = User(
        username=payload.username,
        email=email,
        password_hash=hash_password(payload.password),
        role="CLIENT",
        first_name=payload.first_name,
        last_name=payload.last_name,
        is_active=True,
        token_version=1,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # a concurrent register took the email or username first
        await db.rollback()
        raise conflict
    await db.refresh(user)
    logger.info("User registered: {}", user.username)
    return build_auth_response(user)


# === Login (Redis rate limited) ===
@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginRequest, request: Request, db: AsyncSession = Depends(get_db)):
    """Log in with email or username; answers {user, accessToken, refreshToken}."""
    ip = client_ip(request)
    identity = payload.email_or_username.strip()

    allowed, retry_after = await check_limit_and_hit(ip, identity, scope="login")
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Please try again later.",
            headers={"Retry-After": str(retry_after)},
        )

    result = await db.execute(
        select(User).where(or_(User.email == identity.lower(), User.username == identity))
    )
    user = result.scalar_one_or_none()

    # same message for unknown user and bad password
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")

    await reset_success(ip, identity, scope="login")
    return build_auth_response(user)


# === Refresh (rotation: old refresh blacklisted, ver checked) ===
@router.post("/refresh", response_model=RefreshResponse)
async def refresh_token(payload: RefreshRequest, db: AsyncSession = Depends(get_db)):
    invalid = HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired refresh token")
    try:
        claims = decode_refresh_token(payload.refresh_token)
        user_id = int(claims["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise invalid

    jti = claims.get("jti")
    if jti and await is_blacklisted(db, jti):
        logger.warning("Rotated refresh token replayed for user {}", user_id)
        raise invalid

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")

    token_ver = claims.get("ver")
    if token_ver is None or int(token_ver) != int(user.token_version):
        raise invalid

    await _blacklist(db, payload.refresh_token, user.id, "rotated", "refresh")
    try:
        await db.commit()
    except IntegrityError:
        # a concurrent refresh rotated the same token first
        await db.rollback()
        raise invalid

    return build_auth_response(user)


# === Logout ===
@router.post("/logout", response_model=dict)
async def logout(
    payload: Optional[LogoutRequest] = None,
    current_user: User = Depends(get_current_user),
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    """Blacklist the presented access token and, if sent, the refresh token."""
    access_token = _bearer(authorization)
    if access_token:
        await _blacklist(db, access_token, current_user.id, "logout", "access")
    if payload and payload.refresh_token:
        await _blacklist(db, payload.refresh_token, current_user.id, "logout", "refresh")
    await db.commit()
    return {"detail": "Logged out"}


# === Logout everywhere ===
@router.post("/logout-all", response_model=dict)
async def logout_all(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    authorization: Optional[str] = Header(None),
):
    """Bump token_version so every issued token stops validating."""
    current_user.token_version = int(current_user.token_version) + 1
    access_token = _bearer(authorization)
    if access_token:
        await _blacklist(db, access_token, current_user.id, "logout_all", "access")
    await db.commit()
    return {"detail": "Logged out from all devices"}


@router.get("/me", response_model=UserRead)
async def read_me(current_user: User = Depends(get_current_user)):
    return UserRead.from_user(current_user)
