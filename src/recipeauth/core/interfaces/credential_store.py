"""Credential store interface for user accounts and lockout counters."""

from abc import ABC, abstractmethod
from datetime import datetime

from recipeauth.core.models import Role, User


class CredentialStore(ABC):
    """Interface for user account persistence.

    Counter updates must be atomic per account: concurrent failed logins
    for the same account may not lose increments, and the lock check is
    part of the same write as the increment.

    Implementations: SqlCredentialStore
    """

    @abstractmethod
    async def find_user_by_id(self, user_id: str) -> User | None:
        """Look up an account by id.

        Returns:
            User or None if not found
        """
        ...

    @abstractmethod
    async def find_user_by_email(self, email: str) -> User | None:
        """Look up an account by login email (case-insensitive)."""
        ...

    @abstractmethod
    async def find_user_by_username(self, username: str) -> User | None: ...

    @abstractmethod
    async def create_user(
        self, email: str, username: str, password_hash: str, role: Role = Role.USER
    ) -> User:
        """Create an account.

        Raises:
            ConflictError: If email or username is already taken
        """
        ...

    @abstractmethod
    async def increment_failed_login(
        self, user_id: str, now: datetime, threshold: int, lock_until: datetime
    ) -> int | None:
        """Atomically count a failed attempt unless the account is locked.

        A lock that ended at or before `now` is discarded and counting
        restarts at 1. The increment that reaches `threshold` sets
        locked_until to `lock_until` in the same statement.

        Returns:
            Counter value after the increment, or None if the account is
            locked at `now` (counter untouched)
        """
        ...

    @abstractmethod
    async def reset_failed_login(self, user_id: str) -> None:
        """Atomically zero the failure counter and clear any lock."""
        ...

    @abstractmethod
    async def record_login(self, user_id: str, at: datetime) -> bool:
        """Record a successful authentication and reset the counter.

        Refused when the account is locked at `at`, so a concurrent
        lock is never cleared by a login that raced it.

        Returns:
            False if the account was locked (nothing written)
        """
        ...

    @abstractmethod
    async def update_password(
        self, user_id: str, password_hash: str, at: datetime
    ) -> None: ...

    @abstractmethod
    async def update_role(self, user_id: str, role: Role) -> User | None: ...

    @abstractmethod
    async def list_users(self) -> list[User]: ...
