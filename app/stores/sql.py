"""
SQLAlchemy implementation of the store contracts.

Each write commits on its own: a request that fails half-way keeps whatever it already
wrote, and the next event for the same user repairs the aggregate. The aggregate
read-modify-write runs under a per-user asyncio lock plus SELECT ... FOR UPDATE, so
it is serialized both within a process and (on PostgreSQL) across processes.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.errors import NotFoundError, StoreError
from app.core.locks import KeyedLock, aggregate_locks
from app.core.logging import get_logger
from app.models.analytics import PageView, UserAnalytics, UserSession
from app.services.filters import FilterPredicate
from app.stores.ports import AggregateMutator, Stores

logger = get_logger(__name__)

SESSION_COLUMNS: dict[str, Any] = {c.name: c for c in UserSession.__table__.columns}
PAGE_VIEW_COLUMNS: dict[str, Any] = {
    **{c.name: c for c in PageView.__table__.columns},
    **{f"session.{name}": column for name, column in SESSION_COLUMNS.items()},
}
AGGREGATE_COLUMNS: dict[str, Any] = {c.name: c for c in UserAnalytics.__table__.columns}


class _SQLStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def _operation(self, name: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("store.failure", operation=name, error=str(exc))
            raise StoreError(name, str(exc)) from exc


class SQLSessionStore(_SQLStore):
    async def create_session(self, **fields: Any) -> UserSession:
        async with self._operation("create_session"):
            session = UserSession(**fields)
            self.db.add(session)
            await self.db.commit()
        return session

    async def get_session(self, session_id: str) -> UserSession:
        async with self._operation("get_session"):
            session = await self.db.get(UserSession, session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        return session

    async def touch_session(self, session_id: str, now: datetime) -> bool:
        async with self._operation("touch_session"):
            result = await self.db.execute(
                update(UserSession)
                .where(UserSession.id == session_id)
                .values(updated_at=now)
            )
            await self.db.commit()
        return result.rowcount > 0

    async def list_sessions(
        self, predicate: FilterPredicate, skip: int = 0, limit: int | None = None
    ) -> list[UserSession]:
        stmt = (
            select(UserSession)
            .where(*predicate.clauses(SESSION_COLUMNS))
            .order_by(UserSession.created_at.desc(), UserSession.id)
            .offset(skip)
            .limit(limit)
        )
        async with self._operation("list_sessions"):
            result = await self.db.execute(stmt)
        return list(result.scalars().all())


class SQLPageViewStore(_SQLStore):
    async def create_page_view(
        self, session_id: str, page_url: str, page_title: str, entry_time: datetime
    ) -> PageView:
        async with self._operation("create_page_view"):
            page_view = PageView(
                session_id=session_id,
                page_url=page_url,
                page_title=page_title,
                entry_time=entry_time,
            )
            self.db.add(page_view)
            await self.db.commit()
        return page_view

    async def get_page_view(self, page_view_id: str) -> PageView:
        async with self._operation("get_page_view"):
            page_view = await self.db.get(PageView, page_view_id, populate_existing=True)
        if page_view is None:
            raise NotFoundError("Page view", page_view_id)
        return page_view

    async def close_page_view(
        self, page_view_id: str, exit_time: datetime, time_spent: int
    ) -> PageView:
        page_view = await self.get_page_view(page_view_id)
        async with self._operation("close_page_view"):
            page_view.exit_time = exit_time
            page_view.time_spent = time_spent
            await self.db.commit()
        return page_view

    async def list_page_views(
        self, predicate: FilterPredicate, skip: int = 0, limit: int | None = None
    ) -> list[PageView]:
        stmt = select(PageView)
        if any(name.startswith("session.") for name in predicate.fields()):
            stmt = stmt.join(UserSession, PageView.session_id == UserSession.id)
        stmt = (
            stmt.where(*predicate.clauses(PAGE_VIEW_COLUMNS))
            .order_by(PageView.entry_time, PageView.id)
            .offset(skip)
            .limit(limit)
        )
        async with self._operation("list_page_views"):
            result = await self.db.execute(stmt)
        return list(result.scalars().all())


class SQLAnalyticsStore(_SQLStore):
    def __init__(self, db: AsyncSession, locks: KeyedLock = aggregate_locks):
        super().__init__(db)
        self.locks = locks

    async def get_aggregate(self, user_id: str) -> UserAnalytics | None:
        async with self._operation("get_aggregate"):
            result = await self.db.execute(
                select(UserAnalytics)
                .where(UserAnalytics.user_id == user_id)
                .execution_options(populate_existing=True)
            )
        return result.scalar_one_or_none()

    async def _locked_row(self, user_id: str) -> UserAnalytics | None:
        result = await self.db.execute(
            select(UserAnalytics)
            .where(UserAnalytics.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _insert_if_absent(self, aggregate: UserAnalytics) -> bool:
        """INSERT ... ON CONFLICT (user_id) DO NOTHING; False when another writer won."""
        values = {
            column.key: getattr(aggregate, column.key)
            for column in UserAnalytics.__table__.columns
            if getattr(aggregate, column.key) is not None
        }
        insert = sqlite_insert if self.db.bind.dialect.name == "sqlite" else postgresql_insert
        result = await self.db.execute(
            insert(UserAnalytics)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        return result.rowcount > 0

    async def upsert_aggregate(
        self, user_id: str, mutator: AggregateMutator
    ) -> UserAnalytics | None:
        async with self.locks.hold(user_id):
            async with self._operation("upsert_aggregate"):
                current = await self._locked_row(user_id)
                aggregate = mutator(current)
                if aggregate is not None and current is None:
                    # FOR UPDATE locks nothing while the row is missing, so the
                    # first insert can race a writer in another process
                    if await self._insert_if_absent(aggregate):
                        aggregate = await self._locked_row(user_id)
                    else:
                        logger.info("store.aggregate_insert_lost", user_id=user_id)
                        aggregate = mutator(await self._locked_row(user_id))
                await self.db.commit()
        return aggregate

    async def list_aggregates(
        self, predicate: FilterPredicate, skip: int = 0, limit: int | None = None
    ) -> list[UserAnalytics]:
        stmt = (
            select(UserAnalytics)
            .where(*predicate.clauses(AGGREGATE_COLUMNS))
            .order_by(UserAnalytics.last_visit.desc(), UserAnalytics.user_id)
            .offset(skip)
            .limit(limit)
        )
        async with self._operation("list_aggregates"):
            result = await self.db.execute(stmt)
        return list(result.scalars().all())


def sql_stores(db: AsyncSession) -> Stores:
    return Stores(
        sessions=SQLSessionStore(db),
        page_views=SQLPageViewStore(db),
        analytics=SQLAnalyticsStore(db),
    )


async def get_stores(db: AsyncSession = Depends(get_db)) -> Stores:
    """FastAPI dependency — SQL stores bound to the request's database session."""
    return sql_stores(db)
