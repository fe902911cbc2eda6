"""FastAPI application entry point."""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

from recipeauth import __version__
from recipeauth.app.api.v1 import auth_router
from recipeauth.app.components import build_components
from recipeauth.app.config import Settings, get_settings
from recipeauth.app.logging import setup_logging
from recipeauth.app.metrics import get_metrics_response, setup_metrics
from recipeauth.app.middleware import LoggingMiddleware, SessionMiddleware
from recipeauth.core.errors import (
    ConflictError,
    InternalError,
    InvalidRequestError,
    RecipeAuthError,
    StoreUnavailableError,
    UnauthorizedError,
)
from recipeauth.core.interfaces import CredentialStore, RevocationLedger
from recipeauth.core.logging_schema import LogEvent
from recipeauth.core.models import Role
from recipeauth.core.security import hash_password
from recipeauth.infra import (
    close_db,
    close_redis,
    get_engine,
    get_redis,
    get_session_factory,
    init_db,
    init_redis,
)
from recipeauth.services import (
    InMemoryRevocationLedger,
    RedisRevocationLedger,
    SqlCredentialStore,
    sweep_ledger_loop,
)

setup_logging()
logger = logging.getLogger(__name__)


async def _ensure_admin_user(store: CredentialStore) -> None:
    """Create or promote the bootstrap admin account from environment variables.

    Skipped unless ADMIN_PASSWORD is set.

    Env vars:
    - ADMIN_EMAIL: Admin email (default: admin@localhost.localdomain)
    - ADMIN_USERNAME: Admin username (default: admin)
    - ADMIN_PASSWORD: Admin password
    """
    password = os.getenv("ADMIN_PASSWORD")
    if not password:
        return

    email = os.getenv("ADMIN_EMAIL", "admin@localhost.localdomain")
    username = os.getenv("ADMIN_USERNAME", "admin")

    user = await store.find_user_by_email(email)
    if user is None:
        try:
            user = await store.create_user(
                email=email,
                username=username,
                password_hash=hash_password(password),
                role=Role.ADMIN,
            )
        except ConflictError:
            # Another worker created it first
            return
    elif user.role != Role.ADMIN:
        await store.update_role(user.id, Role.ADMIN)

    logger.info(
        "Ensured admin user",
        extra={"event": LogEvent.APP_STARTED, "username": username},
    )


async def _create_ledger(settings: Settings) -> RevocationLedger:
    if settings.security.revocation_backend == "redis":
        client = await init_redis(settings)
        return RedisRevocationLedger(client, settings.redis.key_prefix)
    return InMemoryRevocationLedger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    setup_metrics(settings.metrics)

    await init_db()
    ledger = await _create_ledger(settings)
    store = SqlCredentialStore(get_session_factory())
    app.state.auth = build_components(settings, store, ledger)
    await _ensure_admin_user(store)

    logger.info(
        "Starting application",
        extra={
            "event": LogEvent.APP_STARTED,
            "revocation_backend": settings.security.revocation_backend,
        },
    )

    sweep_task = asyncio.create_task(
        sweep_ledger_loop(ledger, settings.security.revocation_sweep_interval)
    )

    yield

    logger.info("Shutting down application", extra={"event": LogEvent.APP_STOPPED})
    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass

    await close_redis()
    await close_db()


app = FastAPI(title="RecipeAuth", version=__version__, lifespan=lifespan)
# Last added runs first: logging wraps session resolution
app.add_middleware(SessionMiddleware)
app.add_middleware(LoggingMiddleware)


def _error_response(exc: RecipeAuthError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(),
    )


@app.exception_handler(RecipeAuthError)
async def recipeauth_error_handler(
    request: Request, exc: RecipeAuthError
) -> JSONResponse:
    """Handle RecipeAuthError exceptions."""
    return _error_response(exc)


@app.exception_handler(StoreUnavailableError)
@app.exception_handler(TimeoutError)
async def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fail closed when the credential store or ledger is unreachable."""
    logger.error(
        "Credential store unavailable",
        extra={
            "event": LogEvent.SESSION_FAILED_CLOSED,
            "path": request.url.path,
            "error_type": type(exc).__name__,
        },
    )
    return _error_response(UnauthorizedError())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return _error_response(InvalidRequestError(message))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error",
        extra={"event": LogEvent.REQUEST_FAILED, "path": request.url.path},
    )
    return _error_response(InternalError())


app.include_router(auth_router, prefix="/api/v1")


async def _check_service(check_fn) -> str:
    """Check service health and return status string."""
    try:
        await check_fn()
        return "connected"
    except RuntimeError:
        return "not initialized"
    except Exception as e:
        return f"error: {e}"


async def _check_postgres() -> None:
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))


async def _check_redis() -> None:
    await get_redis().ping()


@app.get("/health")
async def health():
    services = {"database": await _check_service(_check_postgres)}
    if get_settings().security.revocation_backend == "redis":
        services["redis"] = await _check_service(_check_redis)

    is_degraded = any(s != "connected" for s in services.values())

    return {
        "status": "degraded" if is_degraded else "ok",
        "version": __version__,
        "services": services,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics_response()
