# vigora/core/security.py
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from jose import jwt, JWTError
from passlib.context import CryptContext

from vigora.core.config import settings

# === Password Hashing ===
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__ident="2b",
    bcrypt__truncate_error=False,
)

def _sanitize_password(p: str) -> str:
    # bcrypt only reads the first 72 bytes
    return p[:72] if isinstance(p, str) else p

def hash_password(plain: str) -> str:
    return pwd_context.hash(_sanitize_password(plain))

def verify_password(plain: str, password_hash: str) -> bool:
    return pwd_context.verify(_sanitize_password(plain), password_hash)

# === JWT Helpers ===
def _now_utc() -> datetime:
    return datetime.now(timezone.utc)

def _exp(minutes: int) -> datetime:
    return _now_utc() + timedelta(minutes=minutes)

def _refresh_secret() -> str:
    # falls back to SECRET_KEY when REFRESH_SECRET_KEY is unset
    return settings.REFRESH_SECRET_KEY or settings.SECRET_KEY

def _encode(claims: Dict[str, Any], key: str) -> str:
    return jwt.encode(claims, key, algorithm=settings.JWT_ALGORITHM)

def _decode(token: str, key: str) -> Dict[str, Any]:
    return jwt.decode(token, key, algorithms=[settings.JWT_ALGORITHM])

# === Issue Tokens ===
ACCESS = "access"
REFRESH = "refresh"


def _issue(data: Dict[str, Any], token_type: str, minutes: int, key: str) -> str:
    claims = {
        **data,
        "type": token_type,
        "jti": str(uuid4()),
        "iat": int(_now_utc().timestamp()),
        "exp": _exp(minutes),
    }
    return _encode(claims, key)

def create_access_token(data: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    """
    Sign an access token. Callers put in data:
      - sub: user id (str)
      - role: user role
      - ver: the user's token_version (int)
    """
    return _issue(data, ACCESS, expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES, settings.SECRET_KEY)

def create_refresh_token(data: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    return _issue(data, REFRESH, expires_minutes or settings.REFRESH_TOKEN_EXPIRE_MINUTES, _refresh_secret())

def issue_token_pair(user_id: int, ver: int, role: str) -> Tuple[str, str]:
    """Returns (access_token, refresh_token) for one user."""
    base = {"sub": str(user_id), "ver": int(ver)}
    return create_access_token({**base, "role": role}), create_refresh_token(base)

# === Verify / Decode ===
def _expect(payload: Dict[str, Any], token_type: str) -> Dict[str, Any]:
    if payload.get("type") != token_type:
        raise JWTError(f"Expected a {token_type} token")
    return payload

def decode_access_token(token: str) -> Dict[str, Any]:
    return _expect(_decode(token, settings.SECRET_KEY), ACCESS)

def decode_refresh_token(token: str) -> Dict[str, Any]:
    return _expect(_decode(token, _refresh_secret()), REFRESH)

def try_decode_any(token: str) -> Dict[str, Any]:
    """Decode with either key; used to read jti/exp of tokens being revoked."""
    try:
        return _decode(token, settings.SECRET_KEY)
    except JWTError:
        return _decode(token, _refresh_secret())

# === QR codes ===
QR_CODE_BYTES = 20

def generate_qr_code() -> str:
    """Single-use QR login code, 40 hex chars."""
    return secrets.token_hex(QR_CODE_BYTES)
