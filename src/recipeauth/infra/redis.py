"""Redis client for the revocation ledger.

Only opened when SECURITY_REVOCATION_BACKEND=redis. Socket timeouts follow
SECURITY_STORE_TIMEOUT, so a stalled Redis surfaces as a ledger error
that the session resolver turns into an anonymous request.
"""

import logging
from urllib.parse import urlsplit, urlunsplit

import redis.asyncio as redis

from recipeauth.app.config import Settings, get_settings
from recipeauth.core.errors import StoreUnavailableError
from recipeauth.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


def display_url(url: str) -> str:
    """Mask the password in a redis:// URL for logging."""
    parts = urlsplit(url)
    if not parts.password:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit(parts._replace(netloc=netloc))


def _build_client(settings: Settings) -> redis.Redis:
    timeout = settings.security.store_timeout
    return redis.from_url(
        settings.redis.url,
        decode_responses=True,
        max_connections=settings.redis.max_connections,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
        health_check_interval=settings.redis.health_check_interval,
    )


async def init_redis(settings: Settings | None = None) -> redis.Redis:
    """Open the ledger client and check that Redis answers.

    Raises:
        StoreUnavailableError: If Redis does not answer a PING
    """
    global _client

    settings = settings or get_settings()
    url = display_url(settings.redis.url)
    client = _build_client(settings)
    try:
        await client.ping()
    except redis.RedisError as e:
        await client.aclose()
        raise StoreUnavailableError(f"Redis unreachable at {url}: {e}") from e

    _client = client
    logger.info(
        "Redis connected: %s (max_connections=%d)",
        url,
        settings.redis.max_connections,
        extra={"event": LogEvent.REDIS_CONNECTED},
    )
    return client


async def close_redis() -> None:
    global _client

    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("Redis disconnected")


def get_redis() -> redis.Redis:
    """Return the ledger client.

    Raises:
        RuntimeError: If init_redis has not run
    """
    if _client is None:
        raise RuntimeError("Redis not initialized")
    return _client
