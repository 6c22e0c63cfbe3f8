"""
Persistence contracts consumed by the tracking and reporting services.

Services only talk to these protocols; `app.stores.sql` provides the SQLAlchemy
implementation used by the API. Every store method either completes or raises
NotFoundError / StoreError; stores never retry. Listings take an offset and an
optional row cap (None reads every match).
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from app.models.analytics import PageView, UserAnalytics, UserSession
from app.services.filters import FilterPredicate

# Receives the current aggregate (None if the user has none yet) and returns the row
# to persist, or None to leave storage untouched.
AggregateMutator = Callable[[UserAnalytics | None], UserAnalytics | None]


class SessionStore(Protocol):
    async def create_session(self, **fields: Any) -> UserSession: ...

    async def get_session(self, session_id: str) -> UserSession: ...

    async def touch_session(self, session_id: str, now: datetime) -> bool: ...

    async def list_sessions(
        self, predicate: FilterPredicate, skip: int = 0, limit: int | None = None
    ) -> list[UserSession]: ...


class PageViewStore(Protocol):
    async def create_page_view(
        self, session_id: str, page_url: str, page_title: str, entry_time: datetime
    ) -> PageView: ...

    async def get_page_view(self, page_view_id: str) -> PageView: ...

    async def close_page_view(
        self, page_view_id: str, exit_time: datetime, time_spent: int
    ) -> PageView: ...

    async def list_page_views(
        self, predicate: FilterPredicate, skip: int = 0, limit: int | None = None
    ) -> list[PageView]: ...


class AnalyticsStore(Protocol):
    async def get_aggregate(self, user_id: str) -> UserAnalytics | None: ...

    async def upsert_aggregate(
        self, user_id: str, mutator: AggregateMutator
    ) -> UserAnalytics | None:
        """Apply `mutator` to the user's aggregate atomically with respect to other
        upserts for the same user_id."""
        ...

    async def list_aggregates(
        self, predicate: FilterPredicate, skip: int = 0, limit: int | None = None
    ) -> list[UserAnalytics]: ...


@dataclass
class Stores:
    sessions: SessionStore
    page_views: PageViewStore
    analytics: AnalyticsStore
