"""Tests for the revocation ledger implementations."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import redis.asyncio as redis

from recipeauth.core.errors import StoreUnavailableError
from recipeauth.services.revocation import (
    InMemoryRevocationLedger,
    RedisRevocationLedger,
    sweep_ledger_loop,
)


class TestInMemoryRevocationLedger:
    """Tests for InMemoryRevocationLedger."""

    @pytest.mark.asyncio
    async def test_revoke_and_check(self, clock) -> None:
        ledger = InMemoryRevocationLedger(clock=clock)

        await ledger.revoke("jti-1", clock() + timedelta(minutes=15))

        assert await ledger.is_revoked("jti-1") is True
        assert await ledger.is_revoked("jti-2") is False

    @pytest.mark.asyncio
    async def test_revoke_idempotent(self, clock) -> None:
        ledger = InMemoryRevocationLedger(clock=clock)
        expires = clock() + timedelta(minutes=15)

        await ledger.revoke("jti-1", expires)
        await ledger.revoke("jti-1", expires)

        assert await ledger.count() == 1

    @pytest.mark.asyncio
    async def test_later_expiry_kept(self, clock) -> None:
        ledger = InMemoryRevocationLedger(clock=clock)

        await ledger.revoke("jti-1", clock() + timedelta(days=7))
        await ledger.revoke("jti-1", clock() + timedelta(minutes=1))
        clock.advance(minutes=5)

        assert await ledger.purge_expired() == 0
        assert await ledger.is_revoked("jti-1") is True

    @pytest.mark.asyncio
    async def test_already_expired_not_stored(self, clock) -> None:
        """A dead token needs no entry."""
        ledger = InMemoryRevocationLedger(clock=clock)

        await ledger.revoke("jti-1", clock() - timedelta(seconds=1))

        assert await ledger.count() == 0

    @pytest.mark.asyncio
    async def test_purge_expired(self, clock) -> None:
        ledger = InMemoryRevocationLedger(clock=clock)
        await ledger.revoke("short", clock() + timedelta(minutes=15))
        await ledger.revoke("long", clock() + timedelta(days=7))

        clock.advance(minutes=16)
        removed = await ledger.purge_expired()

        assert removed == 1
        assert await ledger.is_revoked("short") is False
        assert await ledger.is_revoked("long") is True

    @pytest.mark.asyncio
    async def test_insert_sweeps_expired(self, clock) -> None:
        ledger = InMemoryRevocationLedger(clock=clock)
        await ledger.revoke("short", clock() + timedelta(minutes=15))

        clock.advance(minutes=16)
        await ledger.revoke("new", clock() + timedelta(minutes=15))

        assert await ledger.is_revoked("short") is False
        assert await ledger.count() == 1

    @pytest.mark.asyncio
    async def test_naive_expiry_treated_as_utc(self, clock) -> None:
        ledger = InMemoryRevocationLedger(clock=clock)
        naive = (clock() + timedelta(minutes=5)).replace(tzinfo=None)

        await ledger.revoke("jti-1", naive)

        assert await ledger.is_revoked("jti-1") is True


class TestRedisRevocationLedger:
    """Tests for RedisRevocationLedger with a mocked client."""

    @pytest.fixture
    def mock_redis(self) -> MagicMock:
        client = MagicMock()
        client.set = AsyncMock(return_value=True)
        client.exists = AsyncMock(return_value=0)
        return client

    @pytest.mark.asyncio
    async def test_revoke_sets_ttl(self, mock_redis: MagicMock, clock) -> None:
        """The key should expire together with the token."""
        ledger = RedisRevocationLedger(mock_redis, key_prefix="test:revoked", clock=clock)

        await ledger.revoke("jti-1", clock() + timedelta(minutes=15))

        mock_redis.set.assert_awaited_once_with("test:revoked:jti-1", "1", px=900_000)

    @pytest.mark.asyncio
    async def test_revoke_expired_skipped(self, mock_redis: MagicMock, clock) -> None:
        ledger = RedisRevocationLedger(mock_redis, key_prefix="test:revoked", clock=clock)

        await ledger.revoke("jti-1", clock() - timedelta(seconds=5))

        mock_redis.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_is_revoked(self, mock_redis: MagicMock) -> None:
        ledger = RedisRevocationLedger(mock_redis, key_prefix="test:revoked")
        mock_redis.exists.return_value = 1

        assert await ledger.is_revoked("jti-1") is True
        mock_redis.exists.assert_awaited_once_with("test:revoked:jti-1")

    @pytest.mark.asyncio
    async def test_default_prefix_from_settings(self, mock_redis: MagicMock) -> None:
        ledger = RedisRevocationLedger(mock_redis)

        await ledger.is_revoked("jti-1")

        mock_redis.exists.assert_awaited_once_with("recipeauth:revoked:jti-1")

    @pytest.mark.asyncio
    async def test_read_failure_raises_store_unavailable(
        self, mock_redis: MagicMock
    ) -> None:
        """Redis errors must surface so callers can fail closed."""
        mock_redis.exists.side_effect = redis.ConnectionError("refused")
        ledger = RedisRevocationLedger(mock_redis, key_prefix="test:revoked")

        with pytest.raises(StoreUnavailableError):
            await ledger.is_revoked("jti-1")

    @pytest.mark.asyncio
    async def test_write_failure_raises_store_unavailable(
        self, mock_redis: MagicMock
    ) -> None:
        mock_redis.set.side_effect = redis.TimeoutError("slow")
        ledger = RedisRevocationLedger(mock_redis, key_prefix="test:revoked")

        with pytest.raises(StoreUnavailableError):
            await ledger.revoke("jti-1", datetime.now(UTC) + timedelta(minutes=5))

    @pytest.mark.asyncio
    async def test_count_scans_prefix(self, mock_redis: MagicMock) -> None:
        async def scan_iter(match: str, count: int):
            for key in ("test:revoked:a", "test:revoked:b"):
                yield key

        mock_redis.scan_iter = scan_iter
        ledger = RedisRevocationLedger(mock_redis, key_prefix="test:revoked")

        assert await ledger.count() == 2

    @pytest.mark.asyncio
    async def test_purge_is_noop(self, mock_redis: MagicMock) -> None:
        ledger = RedisRevocationLedger(mock_redis, key_prefix="test:revoked")
        assert await ledger.purge_expired() == 0


class TestSweepLoop:
    """Tests for sweep_ledger_loop."""

    @pytest.mark.asyncio
    async def test_purges_until_cancelled(self) -> None:
        ledger = AsyncMock()
        ledger.purge_expired = AsyncMock(return_value=3)

        with patch("recipeauth.services.revocation.asyncio.sleep", new=AsyncMock()) as sleep:
            sleep.side_effect = [None, None, asyncio.CancelledError()]
            with pytest.raises(asyncio.CancelledError):
                await sweep_ledger_loop(ledger, interval=3600)

        assert ledger.purge_expired.await_count == 2
        sleep.assert_awaited_with(3600)

    @pytest.mark.asyncio
    async def test_survives_store_errors(self) -> None:
        ledger = AsyncMock()
        ledger.purge_expired = AsyncMock(
            side_effect=[StoreUnavailableError("down"), 1]
        )

        with patch("recipeauth.services.revocation.asyncio.sleep", new=AsyncMock()) as sleep:
            sleep.side_effect = [None, None, asyncio.CancelledError()]
            with pytest.raises(asyncio.CancelledError):
                await sweep_ledger_loop(ledger, interval=60)

        assert ledger.purge_expired.await_count == 2
