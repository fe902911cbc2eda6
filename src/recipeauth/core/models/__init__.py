"""Database models for recipeauth.

Models are defined using SQLModel (SQLAlchemy + Pydantic).
"""

from recipeauth.core.models.auth import Role, User, as_utc, generate_ulid, utc_now

__all__ = [
    "Role",
    "User",
    "as_utc",
    "generate_ulid",
    "utc_now",
]
