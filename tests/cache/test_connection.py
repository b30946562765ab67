from unittest.mock import AsyncMock, MagicMock, patch

import pytest_asyncio

from leap_api.cache import connection


@pytest_asyncio.fixture(autouse=True)
async def _reset_client():
    await connection._create_redis_connection.reset()
    yield
    await connection._create_redis_connection.reset()


async def test_client_is_created_once():
    client = MagicMock()
    with patch.object(connection.aioredis, "from_url", return_value=client) as from_url:
        assert await connection.get_redis() is client
        assert await connection.get_redis() is client
    from_url.assert_called_once()
    assert from_url.call_args.kwargs["decode_responses"] is True


async def test_invalid_url_degrades_to_none():
    with patch.object(connection.aioredis, "from_url", side_effect=ValueError("bad url")):
        assert await connection.get_redis() is None


async def test_close_redis_closes_and_forgets_client():
    first, second = MagicMock(), MagicMock()
    first.aclose = AsyncMock()
    with patch.object(connection.aioredis, "from_url", side_effect=[first, second]):
        assert await connection.get_redis() is first
        await connection.close_redis()
        first.aclose.assert_awaited_once()
        assert await connection.get_redis() is second
