# tests/conftest.py

"""
Pytest configuration and shared fixtures for testing.
"""

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.core import config
from app.core.database.engine import build_engine, get_db, init_db
from app.features.permissions.capabilities import CapabilityMatrix
from app.main import app


@pytest_asyncio.fixture
async def engine():
    """In-memory database shared by every session of one test."""
    test_engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    """Session used by tests to seed and inspect data. Seed helpers commit."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP client talking to the app with get_db pointed at the test database."""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.limiter.enabled = False
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.limiter.enabled = True


@pytest.fixture
def matrix():
    """Fresh default capability matrix."""
    return CapabilityMatrix()


def auth_headers(user) -> dict:
    """Bearer header for a user, signed the way the session service signs tokens."""
    token = jwt.encode({"sub": user.id}, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}
