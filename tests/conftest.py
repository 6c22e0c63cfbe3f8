"""
Shared fixtures: an isolated in-memory SQLite database per test, SQL stores bound
to it, and an httpx client wired to the app with get_db overridden.

Run with: pytest tests/ -v
"""

import os

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.database import build_engine, build_session_factory, get_db, init_db  # noqa: E402
from app.main import app  # noqa: E402
from app.stores.sql import sql_stores  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ── Database ───────────────────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def session_factory():
    engine = build_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    await init_db(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def stores(db_session):
    return sql_stores(db_session)


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

