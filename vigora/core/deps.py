# vigora/core/deps.py
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from vigora.core.config import settings
from vigora.db.session import get_db
from vigora.models.users import User
from vigora.models.token_blacklist import TokenBlacklist
from vigora.core.security import decode_access_token


oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_PREFIX}/auth/login",
    auto_error=False,
)


def _unauthorized(detail: str = "Invalid or expired access token") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def is_blacklisted(db: AsyncSession, jti: str) -> bool:
    result = await db.execute(select(TokenBlacklist.id).where(TokenBlacklist.jti == jti))
    return result.scalar_one_or_none() is not None


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the user behind a Bearer access token:
      1. JWT signature and exp
      2. type == "access"
      3. jti not blacklisted (logout)
      4. user exists and is active
      5. ver == user.token_version (logout-all)
    Every failure is a 401 so clients can try a refresh.
    """
    if not token:
        raise _unauthorized("Not authenticated")

    try:
        payload = decode_access_token(token)
        user_id = int(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise _unauthorized()

    jti = payload.get("jti")
    if jti and await is_blacklisted(db, jti):
        raise _unauthorized("Token has been revoked")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise _unauthorized()

    ver_in_token = payload.get("ver")
    if ver_in_token is None or int(ver_in_token) != int(user.token_version):
        raise _unauthorized("Token invalidated by global logout")

    return user
