import asyncio
import logging
from functools import wraps

import redis.asyncio as aioredis
from redis.exceptions import RedisError, ConnectionError, TimeoutError

from leap_api.core.config import get_settings

_log = logging.getLogger(__name__)

# Key namespace shared by everything this service stores in Redis
NAMESPACE = "leap:"


def _once(fn):
    """Caches the first successful result of an async factory; failures are retried on the next call."""
    in_flight = None
    result = None

    @wraps(fn)
    async def wrapper():
        nonlocal in_flight, result
        if result is not None:
            return result
        if in_flight is None:
            in_flight = asyncio.create_task(fn())
        try:
            result = await in_flight
            return result
        except Exception as e:
            _log.error(f"Task for {fn.__name__} failed: {e}", exc_info=True)
            result = None
            return None
        finally:
            in_flight = None

    async def reset():
        nonlocal result, in_flight
        if in_flight and not in_flight.done():
            in_flight.cancel()
            try:
                await in_flight
            except asyncio.CancelledError:
                _log.debug(f"Cancelled in-flight task for {fn.__name__}")
        in_flight = None
        result_to_close = result
        result = None
        return result_to_close

    wrapper.reset = reset # type: ignore
    return wrapper


@_once
async def _create_redis_connection() -> aioredis.Redis | None:
    url = get_settings().redis_url
    _log.info(f"Creating Redis client for {url}")
    try:
        return aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=1,   # 1-second TCP connect cap
            socket_timeout=2,           # 2-second op cap
        )
    except (RedisError, ConnectionError, TimeoutError, ValueError) as exc:
        _log.error(f"Failed to create Redis client for {url}; rate limiting disabled ({exc})")
        return None


async def get_redis() -> aioredis.Redis | None:
    """
    Returns the shared Redis client, or None if it could not be created.
    Callers must treat None as "Redis unavailable" and degrade gracefully.
    """
    return await _create_redis_connection() # type: ignore


async def close_redis() -> None:
    """Close and discard the cached client."""
    client_to_close = await _create_redis_connection.reset() # type: ignore
    if client_to_close:
        try:
            await client_to_close.aclose()
            _log.info("Redis connection pool closed.")
        except RedisError as e:
            _log.warning(f"Error closing Redis connection: {e}")
