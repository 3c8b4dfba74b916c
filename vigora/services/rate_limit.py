# vigora/services/rate_limit.py
from __future__ import annotations

import time
from typing import Optional, Tuple

from redis.asyncio import Redis
from vigora.core.config import settings

# Singleton Redis client (lazy-init)
_redis: Optional[Redis] = None


def _enabled() -> bool:
    # read on every call so tests can flip it with monkeypatch
    return bool(settings.RATE_LIMIT_ENABLED)


def get_redis() -> Redis:
    """Lazy Redis connection (redis.asyncio)."""
    if not _enabled():
        raise RuntimeError("Rate limit is disabled in current environment")
    global _redis
    if _redis is None:
        _redis = Redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis


def _key_ip(scope: str, ip: str) -> str:
    return f"rl:{scope}:ip:{ip or 'unknown'}"


def _key_identity_ip(scope: str, identity: str, ip: str) -> str:
    return f"rl:{scope}:id:{(identity or '').lower()}|{ip or 'unknown'}"


async def _prune(redis: Redis, key: str, now_s: float) -> None:
    """Drop attempts that left the sliding window."""
    await redis.zremrangebyscore(key, "-inf", now_s - settings.RATE_LIMIT_WINDOW_SEC)


async def _count(redis: Redis, key: str) -> int:
    return int(await redis.zcard(key))


async def _oldest_ts(redis: Redis, key: str) -> Optional[float]:
    data = await redis.zrange(key, 0, 0, withscores=True)
    if data:
        return float(data[0][1])
    return None


async def _hit(redis: Redis, key: str, now_s: float) -> None:
    member = f"{now_s:.6f}"
    await redis.zadd(key, {member: now_s})
    await redis.expire(key, settings.RATE_LIMIT_WINDOW_SEC)


def _retry_after(oldest: Optional[float], now_s: float) -> int:
    return max(1, int(settings.RATE_LIMIT_WINDOW_SEC - (now_s - (oldest or now_s))))


async def check_limit_and_hit(ip: str, identity: Optional[str], scope: str = "login") -> Tuple[bool, int]:
    """
    Check the sliding window and, when allowed, record this attempt.
    Returns (allowed, retry_after_seconds). The IP bucket is checked first,
    then identity+IP.
    """
    if not _enabled():
        return True, 0

    r = get_redis()
    now_s = time.time()

    kip = _key_ip(scope, ip)
    await _prune(r, kip, now_s)
    if await _count(r, kip) >= settings.RATE_LIMIT_MAX_PER_IP:
        return False, _retry_after(await _oldest_ts(r, kip), now_s)

    if identity:
        kid = _key_identity_ip(scope, identity, ip)
        await _prune(r, kid, now_s)
        if await _count(r, kid) >= settings.RATE_LIMIT_MAX_PER_IDENTITY_IP:
            return False, _retry_after(await _oldest_ts(r, kid), now_s)

    await _hit(r, kip, now_s)
    if identity:
        await _hit(r, _key_identity_ip(scope, identity, ip), now_s)

    return True, 0


async def reset_success(ip: str, identity: Optional[str], scope: str = "login") -> None:
    """
    Clear the identity+IP bucket after a successful login.
    The IP bucket is kept to slow down account scanning.
    """
    if not identity or not _enabled():
        return
    r = get_redis()
    await r.delete(_key_identity_ip(scope, identity, ip))


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
