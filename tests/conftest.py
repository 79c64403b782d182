"""Shared test fixtures.

Store-backed tests run against an in-memory SQLite database (aiosqlite) with
the ORM metadata created per test. Redis is an AsyncMock.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from unittest.mock import AsyncMock

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from matchpoint.config import get_settings
from matchpoint.database import get_session
from matchpoint.db.base import Base
from matchpoint.db.models import PointsAccount, Profile
from matchpoint.dependencies import get_redis_dep
from matchpoint.identity.jwt import reset_key

TEST_JWT_KEY = "matchpoint-test-signing-key-0123456789abcdef"


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch):
    """Fresh settings with a known signing key for every test."""
    monkeypatch.setenv("MATCHPOINT_IDENTITY_JWT_KEY", TEST_JWT_KEY)
    monkeypatch.setenv("MATCHPOINT_LOG_FORMAT", "console")
    get_settings.cache_clear()
    reset_key()
    yield
    get_settings.cache_clear()
    reset_key()


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    eng = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
def redis() -> AsyncMock:
    mock = AsyncMock()
    mock.publish = AsyncMock(return_value=1)
    return mock


@pytest.fixture
def make_token() -> Callable[..., str]:
    def _make(user_id: str, premium: bool = False) -> str:
        return jwt.encode({"sub": user_id, "premium": premium}, TEST_JWT_KEY, algorithm="HS256")

    return _make


@pytest_asyncio.fixture
async def client(db: AsyncSession, redis: AsyncMock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the test session and Redis mock injected."""
    from matchpoint.main import create_app

    app = create_app()

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        yield db

    async def _redis() -> AsyncGenerator[AsyncMock, None]:
        yield redis

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_redis_dep] = _redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def add_profile(db: AsyncSession) -> Callable[..., Awaitable[Profile]]:
    async def _add(user_id: str, username: str | None = None, **fields: object) -> Profile:
        profile = Profile(id=user_id, username=username or user_id, **fields)
        db.add(profile)
        await db.commit()
        return profile

    return _add


@pytest.fixture
def set_balance(db: AsyncSession) -> Callable[[str, int], Awaitable[None]]:
    async def _set(user_id: str, balance: int) -> None:
        account = await db.get(PointsAccount, user_id)
        if account is None:
            db.add(PointsAccount(user_id=user_id, balance=balance, lifetime_earned=0))
        else:
            account.balance = balance
        await db.commit()

    return _set
