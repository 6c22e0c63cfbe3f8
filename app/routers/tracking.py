"""
Tracking router — anonymous ingestion endpoints called by the browser tracker.

  POST /track/events           → record a page load (creates/reuses a session)
  POST /track/page-views/end   → close a page view with its exit time

Rate limited per client address; domain errors are mapped to HTTP in app.main.
"""

from fastapi import APIRouter, Depends, Request, status

from app.core.limiter import get_ingest_limit, limiter
from app.schemas.analytics import EndPageViewIn, PageViewOut, TrackEventIn, TrackEventResult
from app.services.tracking_service import close_page_view, record_event
from app.stores.ports import Stores
from app.stores.sql import get_stores

router = APIRouter()


@router.post(
    "/events",
    response_model=TrackEventResult,
    status_code=status.HTTP_201_CREATED,
    summary="Record a page load",
)
@limiter.limit(get_ingest_limit)
async def track_event(
    request: Request,
    body: TrackEventIn,
    stores: Stores = Depends(get_stores),
):
    return await record_event(stores, body)


@router.post(
    "/page-views/end",
    response_model=PageViewOut,
    summary="Close a page view and fold its dwell time into the user's analytics",
)
@limiter.limit(get_ingest_limit)
async def end_page_view(
    request: Request,
    body: EndPageViewIn,
    stores: Stores = Depends(get_stores),
):
    return await close_page_view(stores, body.page_view_id, body.exit_time)
