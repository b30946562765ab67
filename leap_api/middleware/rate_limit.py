import logging
from typing import Awaitable, Callable

from fastapi import Request, status
from redis.exceptions import RedisError

from leap_api.cache.connection import NAMESPACE, get_redis
from leap_api.core.config import get_settings
from leap_api.errors import RateLimited
from leap_api.routers.common import http_error

logger = logging.getLogger(__name__)


def client_address(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


async def check_rate_limit(scope: str, identifier: str, limit: int, window_seconds: int) -> int:
    """
    Fixed-window counter in Redis: INCR, and set the expiry on the first hit.

    Returns the request count within the current window. Fails open (returns 0)
    when Redis is unavailable or errors.

    Raises:
        RateLimited: when the count exceeds `limit`; `retry_after` is the
            number of seconds until the window resets.
    """
    redis = await get_redis()
    if not redis:
        logger.warning(f"Rate limiting skipped for {scope}:{identifier}: Redis unavailable.")
        return 0

    key = f"{NAMESPACE}rl:{scope}:{identifier}"
    try:
        pipe = redis.pipeline()
        pipe.incr(key)
        pipe.expire(key, window_seconds, nx=True) # nx=True: only set expiry if key doesn't have one
        pipe.ttl(key)
        count, _, ttl = await pipe.execute()
    except RedisError as e:
        logger.error(f"Redis error during rate limiting for {key}: {e}. Allowing request.")
        return 0

    count = int(count)
    if count > limit:
        retry_after = int(ttl) if ttl and int(ttl) > 0 else window_seconds
        logger.warning(f"Rate limit exceeded for {scope}:{identifier}. Count: {count}, Limit: {limit}")
        raise RateLimited(retry_after=retry_after)
    logger.debug(f"Rate limit check passed for {scope}:{identifier}. Count: {count}/{limit}")
    return count


def rate_limit_by_ip(scope: str, limit_setting: str) -> Callable[[Request], Awaitable[None]]:
    """
    Dependency factory for per-address limits.

    Args:
        scope: Key segment separating the counters of different endpoints.
        limit_setting: Name of the Settings field holding the per-window limit.
    """
    async def _limit_by_ip(request: Request) -> None:
        settings = get_settings()
        try:
            await check_rate_limit(
                scope,
                client_address(request),
                getattr(settings, limit_setting),
                settings.rate_limit_window_seconds,
            )
        except RateLimited as e:
            raise http_error(
                status.HTTP_429_TOO_MANY_REQUESTS,
                e,
                headers={"Retry-After": str(e.retry_after)},
            ) from e
    return _limit_by_ip
