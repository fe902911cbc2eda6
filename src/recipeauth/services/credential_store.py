"""SQL-backed credential store.

Provides account lookups and lockout counter updates:
- Counter increments are single UPDATE ... RETURNING statements guarded
  by the lock state, so concurrent failed logins on one account never
  lose an increment and never count against a held lock.
- Each call opens its own short-lived session; the store is shared
  across requests and safe to use from the session middleware.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import (
    ColumnElement,
    DateTime,
    and_,
    case,
    func,
    literal,
    null,
    or_,
    select,
    update,
)
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import col

from recipeauth.core.errors import ConflictError, StoreUnavailableError
from recipeauth.core.interfaces import CredentialStore
from recipeauth.core.models import Role, User


def _unlocked_at(now: datetime) -> ColumnElement[bool]:
    return or_(col(User.locked_until).is_(None), col(User.locked_until) <= now)


class SqlCredentialStore(CredentialStore):
    """CredentialStore over an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as db:
                yield db
        except IntegrityError:
            raise
        except DBAPIError as e:
            raise StoreUnavailableError(str(e)) from e

    async def find_user_by_id(self, user_id: str) -> User | None:
        async with self._session() as db:
            return await db.get(User, user_id)

    async def find_user_by_email(self, email: str) -> User | None:
        async with self._session() as db:
            result = await db.execute(
                select(User).where(func.lower(col(User.email)) == email.lower())
            )
            return result.scalar_one_or_none()

    async def find_user_by_username(self, username: str) -> User | None:
        async with self._session() as db:
            result = await db.execute(
                select(User).where(col(User.username) == username)
            )
            return result.scalar_one_or_none()

    async def create_user(
        self, email: str, username: str, password_hash: str, role: Role = Role.USER
    ) -> User:
        if await self.find_user_by_email(email) is not None:
            raise ConflictError("This email is already registered")
        if await self.find_user_by_username(username) is not None:
            raise ConflictError("This username is already taken")

        user = User(
            email=email.lower(),
            username=username,
            password_hash=password_hash,
            role=role,
        )
        async with self._session() as db:
            db.add(user)
            try:
                await db.commit()
            except IntegrityError as e:
                # Lost a race with a concurrent registration
                await db.rollback()
                raise ConflictError("Email or username already taken") from e
            await db.refresh(user)
        return user

    async def increment_failed_login(
        self, user_id: str, now: datetime, threshold: int, lock_until: datetime
    ) -> int | None:
        # SET expressions read the pre-update row on both PostgreSQL and SQLite
        lock_elapsed = and_(
            col(User.locked_until).is_not(None), col(User.locked_until) <= now
        )
        new_count = case(
            (lock_elapsed, 1), else_=col(User.failed_login_attempts) + 1
        )
        async with self._session() as db:
            result = await db.execute(
                update(User)
                .where(col(User.id) == user_id)
                .where(_unlocked_at(now))
                .values(
                    failed_login_attempts=new_count,
                    locked_until=case(
                        (
                            new_count >= threshold,
                            literal(lock_until, DateTime(timezone=True)),
                        ),
                        else_=null(),
                    ),
                )
                .returning(col(User.failed_login_attempts))
            )
            count = result.scalar_one_or_none()
            await db.commit()
            return count

    async def reset_failed_login(self, user_id: str) -> None:
        async with self._session() as db:
            await db.execute(
                update(User)
                .where(col(User.id) == user_id)
                .values(failed_login_attempts=0, locked_until=None)
            )
            await db.commit()

    async def record_login(self, user_id: str, at: datetime) -> bool:
        async with self._session() as db:
            result = await db.execute(
                update(User)
                .where(col(User.id) == user_id)
                .where(_unlocked_at(at))
                .values(failed_login_attempts=0, locked_until=None, last_login=at)
                .returning(col(User.id))
            )
            recorded = result.scalar_one_or_none() is not None
            await db.commit()
            return recorded

    async def update_password(
        self, user_id: str, password_hash: str, at: datetime
    ) -> None:
        async with self._session() as db:
            await db.execute(
                update(User)
                .where(col(User.id) == user_id)
                .values(password_hash=password_hash, password_changed_at=at)
            )
            await db.commit()

    async def update_role(self, user_id: str, role: Role) -> User | None:
        async with self._session() as db:
            user = await db.get(User, user_id)
            if user is None:
                return None
            user.role = role
            await db.commit()
            await db.refresh(user)
            return user

    async def list_users(self) -> list[User]:
        async with self._session() as db:
            result = await db.execute(select(User).order_by(col(User.created_at)))
            return list(result.scalars().all())
