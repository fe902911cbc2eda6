"""Shared fixtures: in-memory SQLite store, ledger, controllable clock."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import httpx
import pytest
import pytest_asyncio

from recipeauth.app.components import AuthComponents, build_components
from recipeauth.app.config import Settings, get_settings
from recipeauth.app.main import app
from recipeauth.core.models import Role, User
from recipeauth.core.security import hash_password
from recipeauth.infra import close_db, get_session_factory, init_db
from recipeauth.services import InMemoryRevocationLedger, SqlCredentialStore

TEST_PASSWORD = "Tomato&Basil42"


class FakeClock:
    """Callable clock that tests can move by hand."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)

    def rewind(self, **kwargs: float) -> None:
        self.now -= timedelta(**kwargs)

    def reset(self) -> None:
        self.now = datetime.now(UTC)


@pytest.fixture
def password() -> str:
    """Password that satisfies the strength policy."""
    return TEST_PASSWORD


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def store() -> AsyncIterator[SqlCredentialStore]:
    """Credential store over a fresh in-memory SQLite database."""
    await init_db("sqlite+aiosqlite:///:memory:")
    yield SqlCredentialStore(get_session_factory())
    await close_db()


@pytest.fixture
def ledger() -> InMemoryRevocationLedger:
    return InMemoryRevocationLedger()


@pytest.fixture
def components(
    settings: Settings,
    store: SqlCredentialStore,
    ledger: InMemoryRevocationLedger,
    clock: FakeClock,
) -> AuthComponents:
    return build_components(settings, store, ledger, clock=clock)


@pytest_asyncio.fixture
async def user(store: SqlCredentialStore) -> User:
    return await store.create_user(
        email="cook@example.com",
        username="cook",
        password_hash=hash_password(TEST_PASSWORD),
    )


@pytest_asyncio.fixture
async def admin(store: SqlCredentialStore) -> User:
    return await store.create_user(
        email="chef@example.com",
        username="chef",
        password_hash=hash_password(TEST_PASSWORD),
        role=Role.ADMIN,
    )


@pytest_asyncio.fixture
async def client(components: AuthComponents) -> AsyncIterator[httpx.AsyncClient]:
    """HTTP client against the app, wired to the test components.

    ASGITransport does not run the lifespan, so app.state is set here.
    """
    app.state.auth = components
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport, base_url="http://testserver"
    ) as client:
        yield client
    del app.state.auth
