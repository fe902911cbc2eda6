"""Revocation ledger implementations.

- InMemoryRevocationLedger: per-process dict, swept periodically.
  Suitable for a single worker or for tests.
- RedisRevocationLedger: one key per jti with PX set to the token's
  remaining lifetime, so Redis expires entries on its own and all
  workers share the ledger.

Configuration via SecurityConfig (SECURITY_ env prefix).
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from datetime import datetime

import redis.asyncio as redis

from recipeauth.app.config import get_settings
from recipeauth.core.errors import StoreUnavailableError
from recipeauth.core.interfaces import RevocationLedger
from recipeauth.core.logging_schema import LogEvent
from recipeauth.core.models import as_utc, utc_now

logger = logging.getLogger(__name__)


class InMemoryRevocationLedger(RevocationLedger):
    """Thread-safe in-process ledger.

    Expired entries are dropped on every insert and by purge_expired().
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._entries: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def _purge_locked(self, now: datetime) -> int:
        expired = [jti for jti, exp in self._entries.items() if exp <= now]
        for jti in expired:
            del self._entries[jti]
        return len(expired)

    async def revoke(self, jti: str, expires_at: datetime) -> None:
        expires_at = as_utc(expires_at)
        with self._lock:
            now = self._clock()
            self._purge_locked(now)
            if expires_at <= now:
                return
            # Keep the later expiry if the same jti is revoked twice
            current = self._entries.get(jti)
            if current is None or current < expires_at:
                self._entries[jti] = expires_at

    async def is_revoked(self, jti: str) -> bool:
        with self._lock:
            return jti in self._entries

    async def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked(self._clock())

    async def count(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for exp in self._entries.values() if exp > now)


class RedisRevocationLedger(RevocationLedger):
    """Ledger shared across workers through Redis.

    Key: {prefix}:{jti}
    TTL: remaining lifetime of the revoked token (PX, milliseconds)
    """

    def __init__(
        self,
        client: redis.Redis,
        key_prefix: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._prefix = key_prefix or get_settings().redis.key_prefix
        self._clock = clock

    def _key(self, jti: str) -> str:
        return f"{self._prefix}:{jti}"

    async def revoke(self, jti: str, expires_at: datetime) -> None:
        remaining_ms = int((as_utc(expires_at) - self._clock()).total_seconds() * 1000)
        if remaining_ms <= 0:
            return
        try:
            await self._client.set(self._key(jti), "1", px=remaining_ms)
        except redis.RedisError as e:
            raise StoreUnavailableError(f"revocation ledger write failed: {e}") from e

    async def is_revoked(self, jti: str) -> bool:
        try:
            return await self._client.exists(self._key(jti)) > 0
        except redis.RedisError as e:
            raise StoreUnavailableError(f"revocation ledger read failed: {e}") from e

    async def purge_expired(self) -> int:
        # Redis drops keys when their PX elapses
        return 0

    async def count(self) -> int:
        try:
            total = 0
            async for _ in self._client.scan_iter(match=f"{self._prefix}:*", count=500):
                total += 1
            return total
        except redis.RedisError as e:
            raise StoreUnavailableError(f"revocation ledger scan failed: {e}") from e


async def sweep_ledger_loop(ledger: RevocationLedger, interval: float) -> None:
    """Purge expired ledger entries every `interval` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await ledger.purge_expired()
        except StoreUnavailableError as e:
            logger.warning(
                "Revocation ledger sweep failed",
                extra={"event": LogEvent.LEDGER_PURGED, "error": str(e)},
            )
            continue
        if removed:
            logger.info(
                "Purged %d expired revocation entries",
                removed,
                extra={"event": LogEvent.LEDGER_PURGED, "removed": removed},
            )
