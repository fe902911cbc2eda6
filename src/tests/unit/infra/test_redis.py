"""Tests for the revocation ledger's Redis client lifecycle."""

from unittest.mock import AsyncMock, patch

import pytest
import redis.asyncio as redis

from recipeauth.app.config import Settings
from recipeauth.core.errors import StoreUnavailableError
from recipeauth.infra import redis as redis_infra


@pytest.fixture
def redis_settings(settings: Settings) -> Settings:
    return settings.model_copy(
        update={
            "redis": settings.redis.model_copy(
                update={"url": "redis://:s3cret@cache:6379/0"}
            )
        }
    )


class TestDisplayUrl:
    def test_masks_password(self) -> None:
        assert (
            redis_infra.display_url("redis://:s3cret@cache:6379/0")
            == "redis://:***@cache:6379/0"
        )

    def test_without_password_unchanged(self) -> None:
        assert redis_infra.display_url("redis://cache:6379") == "redis://cache:6379"


class TestInitRedis:
    @pytest.mark.asyncio
    async def test_timeouts_follow_store_timeout(self, redis_settings: Settings) -> None:
        client = AsyncMock()
        with patch.object(redis_infra.redis, "from_url", return_value=client) as from_url:
            try:
                assert await redis_infra.init_redis(redis_settings) is client
                assert redis_infra.get_redis() is client
            finally:
                await redis_infra.close_redis()

        kwargs = from_url.call_args.kwargs
        assert kwargs["socket_timeout"] == redis_settings.security.store_timeout
        assert kwargs["socket_connect_timeout"] == redis_settings.security.store_timeout
        assert kwargs["decode_responses"] is True
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unreachable_raises_store_unavailable(
        self, redis_settings: Settings
    ) -> None:
        client = AsyncMock()
        client.ping.side_effect = redis.ConnectionError("connection refused")
        with patch.object(redis_infra.redis, "from_url", return_value=client):
            with pytest.raises(StoreUnavailableError) as exc_info:
                await redis_infra.init_redis(redis_settings)

        assert "s3cret" not in str(exc_info.value)
        client.aclose.assert_awaited_once()
        with pytest.raises(RuntimeError):
            redis_infra.get_redis()
