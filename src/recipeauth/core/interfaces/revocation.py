"""Revocation ledger interface."""

from abc import ABC, abstractmethod
from datetime import datetime


class RevocationLedger(ABC):
    """Token identifiers that must be refused before their natural expiry.

    An entry is meaningless once its expires_at passes, because the token
    it names is dead anyway. Purging is an optimization only.

    Implementations: InMemoryRevocationLedger, RedisRevocationLedger
    """

    @abstractmethod
    async def revoke(self, jti: str, expires_at: datetime) -> None:
        """Record a revoked token identifier. Idempotent.

        Args:
            jti: Token identifier (the `jti` claim)
            expires_at: Natural expiry of the revoked token
        """
        ...

    @abstractmethod
    async def is_revoked(self, jti: str) -> bool: ...

    @abstractmethod
    async def purge_expired(self) -> int:
        """Drop entries whose token has expired.

        Returns:
            Number of entries removed
        """
        ...

    @abstractmethod
    async def count(self) -> int:
        """Number of live entries (statistics only)."""
        ...
