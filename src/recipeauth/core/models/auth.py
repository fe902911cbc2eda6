"""Authentication models (Role, User).

Models are defined using SQLModel (SQLAlchemy + Pydantic).
"""

from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel
from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Return a timezone-aware UTC datetime.

    SQLite hands back naive datetimes even for timezone-aware columns.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Role(StrEnum):
    """Account roles checked by the authorization gate."""

    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class User(SQLModel, table=True):
    """User account model."""

    __tablename__ = "users"

    id: str = Field(default_factory=generate_ulid, primary_key=True)
    email: str = Field(unique=True, index=True)
    username: str = Field(unique=True, index=True)
    password_hash: str
    role: Role = Field(default=Role.USER, sa_column=Column(String(16), nullable=False))
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True))
    )
    password_changed_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )

    # Lockout fields
    failed_login_attempts: int = Field(default=0)
    locked_until: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    last_login: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )

    def is_locked(self, now: datetime) -> bool:
        """Locked iff locked_until is set and still in the future."""
        return self.locked_until is not None and as_utc(self.locked_until) > now
