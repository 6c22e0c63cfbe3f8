"""
Filtered listings for the dashboard: sessions, page views, per-user aggregates.
Read-only; no locks are taken, so a listing may observe a half-applied aggregate.
`skip` / `limit` page through the ordered matches; a limit of None returns them all.
"""

from app.core.logging import get_logger
from app.models.analytics import PageView, UserAnalytics, UserSession
from app.schemas.analytics import AnalyticsFilters
from app.services.filters import aggregate_predicate, page_view_predicate, session_predicate
from app.stores.ports import Stores

logger = get_logger(__name__)


async def list_user_sessions(
    stores: Stores,
    filters: AnalyticsFilters | None = None,
    skip: int = 0,
    limit: int | None = None,
) -> list[UserSession]:
    sessions = await stores.sessions.list_sessions(
        session_predicate(filters), skip=skip, limit=limit
    )
    logger.info("analytics.sessions_listed", count=len(sessions), skip=skip, limit=limit)
    return sessions


async def list_page_views(
    stores: Stores,
    filters: AnalyticsFilters | None = None,
    skip: int = 0,
    limit: int | None = None,
) -> list[PageView]:
    page_views = await stores.page_views.list_page_views(
        page_view_predicate(filters), skip=skip, limit=limit
    )
    logger.info("analytics.page_views_listed", count=len(page_views), skip=skip, limit=limit)
    return page_views


async def list_user_analytics(
    stores: Stores,
    filters: AnalyticsFilters | None = None,
    skip: int = 0,
    limit: int | None = None,
) -> list[UserAnalytics]:
    aggregates = await stores.analytics.list_aggregates(
        aggregate_predicate(filters), skip=skip, limit=limit
    )
    logger.info("analytics.user_analytics_listed", count=len(aggregates), skip=skip, limit=limit)
    return aggregates
