"""
Storage wiring: engine construction, the session factory, the declarative base
and the per-request session dependency.

SQLite (aiosqlite) serves local runs and the test suite; PostgreSQL (asyncpg) is the
production target, where `SELECT ... FOR UPDATE` on the aggregate table actually
takes a row lock.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


def is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite leaves ON DELETE CASCADE unenforced unless asked, per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, **options: Any) -> AsyncEngine:
    """Create an async engine with pool settings suited to the backend in `url`."""
    options.setdefault("echo", settings.DEBUG)
    options.setdefault("pool_pre_ping", True)
    if not is_sqlite(url):
        options.setdefault("pool_size", settings.DB_POOL_SIZE)
        options.setdefault("max_overflow", settings.DB_MAX_OVERFLOW)
        options.setdefault("pool_recycle", 3600)
    engine = create_async_engine(url, **options)
    if is_sqlite(url):
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Stores commit after every write; objects stay usable afterwards
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL)
AsyncSessionLocal = build_session_factory(engine)


class Base(DeclarativeBase):
    pass


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create the sessions, page views and user analytics tables if missing."""
    from app.models import analytics  # noqa: F401  registers models

    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("database.tables_created", backend=bind.url.get_backend_name())


async def dispose_db() -> None:
    await engine.dispose()
    logger.info("database.disposed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, committed on success."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
