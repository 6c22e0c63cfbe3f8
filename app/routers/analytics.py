"""
Analytics router — read-only dashboard queries.

  GET /analytics/summary     → headline totals, bounce rate, top pages/countries, breakdowns
  GET /analytics/sessions    → sessions, newest first
  GET /analytics/page-views  → page views, by entry time
  GET /analytics/users       → per-user running aggregates

Every endpoint accepts the same optional filters:
  start_date, end_date, country, device_type, page_url, is_new_user
The three listings also page with skip (default 0) and limit (default 100, max 1000).
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request

from app.core.limiter import get_query_limit, limiter
from app.schemas.analytics import (
    AnalyticsFilters,
    AnalyticsSummary,
    PageViewOut,
    SessionOut,
    UserAnalyticsOut,
)
from app.services.query_service import list_page_views, list_user_analytics, list_user_sessions
from app.services.summary_service import get_analytics_summary
from app.stores.ports import Stores
from app.stores.sql import get_stores

router = APIRouter()


def analytics_filters(
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    country: str | None = Query(default=None, max_length=100),
    device_type: str | None = Query(default=None, max_length=20),
    page_url: str | None = Query(default=None),
    is_new_user: bool | None = Query(default=None),
) -> AnalyticsFilters:
    return AnalyticsFilters(
        start_date=start_date,
        end_date=end_date,
        country=country,
        device_type=device_type,
        page_url=page_url,
        is_new_user=is_new_user,
    )


@router.get(
    "/summary",
    response_model=AnalyticsSummary,
    summary="Aggregated analytics summary",
)
@limiter.limit(get_query_limit)
async def analytics_summary(
    request: Request,
    filters: AnalyticsFilters = Depends(analytics_filters),
    stores: Stores = Depends(get_stores),
):
    return await get_analytics_summary(stores, filters)


@router.get(
    "/sessions",
    response_model=list[SessionOut],
    summary="List user sessions",
)
@limiter.limit(get_query_limit)
async def user_sessions(
    request: Request,
    filters: AnalyticsFilters = Depends(analytics_filters),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    stores: Stores = Depends(get_stores),
):
    return await list_user_sessions(stores, filters, skip=skip, limit=limit)


@router.get(
    "/page-views",
    response_model=list[PageViewOut],
    summary="List page views",
)
@limiter.limit(get_query_limit)
async def page_views(
    request: Request,
    filters: AnalyticsFilters = Depends(analytics_filters),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    stores: Stores = Depends(get_stores),
):
    return await list_page_views(stores, filters, skip=skip, limit=limit)


@router.get(
    "/users",
    response_model=list[UserAnalyticsOut],
    summary="List per-user analytics aggregates",
)
@limiter.limit(get_query_limit)
async def user_analytics(
    request: Request,
    filters: AnalyticsFilters = Depends(analytics_filters),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    stores: Stores = Depends(get_stores),
):
    return await list_user_analytics(stores, filters, skip=skip, limit=limit)
