"""
Test Configuration and Fixtures

Provides the async test client, database fixtures, and key helpers.
Runs on in-memory SQLite unless TEST_DATABASE_URL points elsewhere.
"""

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from backend.db.session import build_engine, get_db, get_session_factory
from backend.main import app
from backend.models.api_key import ApiKey
from backend.models.base import Base
from backend.models.site import Site
from backend.models.user import User
from tests.factories import make_api_key, make_site, make_user

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


def _build_test_engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        return build_engine(
            TEST_DATABASE_URL,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return build_engine(TEST_DATABASE_URL, echo=False)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a clean database session for each test."""
    engine = _build_test_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_local = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_local() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_session: AsyncSession):
    """Session factory that hands out the test session without closing it."""

    @asynccontextmanager
    async def factory():
        yield db_session

    return factory


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async test client with dependency overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Site owner."""
    user = make_user(username="owner", email="owner@test.com")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    """A user with no relation to test_site."""
    user = make_user(username="stranger", email="stranger@test.com")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest_asyncio.fixture
async def test_site(db_session: AsyncSession, test_user: User) -> Site:
    site = make_site(test_user.id, name="Owner's Blog", slug="owners-blog")
    db_session.add(site)
    await db_session.flush()
    return site


@pytest_asyncio.fixture
async def other_site(db_session: AsyncSession, other_user: User) -> Site:
    site = make_site(other_user.id, name="Stranger's Blog", slug="strangers-blog")
    db_session.add(site)
    await db_session.flush()
    return site


@pytest_asyncio.fixture
async def user_key(db_session: AsyncSession, test_user: User) -> tuple[ApiKey, str]:
    """Read/write user key for test_user, returns (db_record, raw_key)."""
    key, raw_key = make_api_key(user_id=test_user.id, scopes=["read", "write"])
    db_session.add(key)
    await db_session.flush()
    return key, raw_key


@pytest_asyncio.fixture
async def admin_key(db_session: AsyncSession) -> tuple[ApiKey, str]:
    """Platform admin key, returns (db_record, raw_key)."""
    key, raw_key = make_api_key(key_type="admin", scopes=["admin"], name="Ops Key")
    db_session.add(key)
    await db_session.flush()
    return key, raw_key
