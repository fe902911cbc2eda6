"""Infrastructure connections (DB, Redis)."""

from recipeauth.infra.postgresql import (
    close_db,
    get_engine,
    get_session_factory,
    init_db,
)
from recipeauth.infra.redis import close_redis, get_redis, init_redis

__all__ = [
    # DB
    "init_db",
    "close_db",
    "get_engine",
    "get_session_factory",
    # Redis
    "init_redis",
    "close_redis",
    "get_redis",
]
