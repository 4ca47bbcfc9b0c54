"""
Shared fixtures: a throwaway SQLite database per test, an ASGI client bound
to it, and helpers that mint real session tokens.
"""

import os

# Settings are read at import time, so the environment goes first.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_honua"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_honua"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from app.database import create_tables, get_db
from app.main import app
from app.security import create_session_token


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'honua-test.db'}", poolclass=NullPool)
    await create_tables(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    """A session for seeding and direct assertions. Commit before calling the API."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user_id: str, **claims) -> dict:
        claims.setdefault("username", user_id.replace("-", "_"))
        return {"Authorization": f"Bearer {create_session_token(user_id, **claims)}"}
    return _headers


@pytest.fixture
def make_user(client, auth_headers):
    """Create a profile through the API and return its auth headers."""
    async def _make(user_id: str, **claims) -> dict:
        headers = auth_headers(user_id, **claims)
        resp = await client.get("/api/profiles/current", headers=headers)
        assert resp.status_code == 200, resp.text
        return headers
    return _make


@pytest.fixture
def fetch(session_factory):
    """Load rows through a fresh session so assertions never see stale state."""
    async def _fetch(stmt):
        async with session_factory() as session:
            return (await session.execute(stmt)).scalars().all()
    return _fetch
