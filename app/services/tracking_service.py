"""
Tracking service — ingestion of page loads and page exits.

record_event:     resolve the session (new vs reused), open a page view, fold the
                  event into the user's running aggregate.
close_page_view:  stamp the exit time, compute dwell time, fold it into the aggregate.

Aggregate changes are expressed as mutators handed to AnalyticsStore.upsert_aggregate,
which applies them under a per-user lock; the insert-vs-update decision is therefore
made against the row as it is inside the critical section, never against a stale read.
"""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from app.core.clock import ensure_utc, utcnow
from app.core.errors import NotFoundError
from app.core.logging import get_logger, tracking_context
from app.models.analytics import PageView, UserAnalytics
from app.schemas.analytics import TrackEventIn, TrackEventResult
from app.services.user_agent import classify_user_agent
from app.stores.ports import Stores

logger = get_logger(__name__)

TWO_PLACES = Decimal("0.01")
COORDINATE_PLACES = Decimal("0.00000001")
ONE_SECOND = timedelta(seconds=1)


# ── Fixed-point helpers ────────────────────────────────────────────────────────
def pages_per_session(total_page_views: int, total_sessions: int) -> Decimal:
    if total_sessions <= 0:
        return Decimal("0.00")
    return (Decimal(total_page_views) / Decimal(total_sessions)).quantize(
        TWO_PLACES, rounding=ROUND_HALF_UP
    )


def to_coordinate(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value)).quantize(COORDINATE_PLACES, rounding=ROUND_HALF_UP)


def compute_time_spent(entry_time: datetime, exit_time: datetime) -> int:
    """Whole seconds between entry and exit, floored; never negative."""
    elapsed = ensure_utc(exit_time) - ensure_utc(entry_time)
    return max(0, elapsed // ONE_SECOND)


# ── Session resolution ─────────────────────────────────────────────────────────
def _session_fields(event: TrackEventIn, is_new_user: bool, now: datetime) -> dict:
    agent = classify_user_agent(event.user_agent)
    geo = event.geolocation
    return {
        "user_id": event.user_id,
        "is_new_user": is_new_user,
        "ip_address": event.ip_address,
        "user_agent": event.user_agent,
        "device_type": agent.device_type.value,
        "operating_system": agent.operating_system,
        "browser": agent.browser,
        "country": geo.country if geo else None,
        "city": geo.city if geo else None,
        "latitude": to_coordinate(geo.latitude) if geo else None,
        "longitude": to_coordinate(geo.longitude) if geo else None,
        "referrer": event.referrer,
        "created_at": now,
        "updated_at": now,
    }


async def resolve_session(
    stores: Stores, event: TrackEventIn, is_new_user: bool, now: datetime
) -> tuple[str, bool]:
    """
    Return (session_id, created). A caller-supplied id must name an existing session;
    an unknown one raises NotFoundError before anything is written.
    """
    if event.session_id is None:
        session = await stores.sessions.create_session(
            **_session_fields(event, is_new_user, now)
        )
        return session.id, True

    touched = await stores.sessions.touch_session(event.session_id, now)
    if not touched:
        logger.warning(
            "tracking.session_missing",
            session_id=event.session_id,
            user_id=event.user_id,
        )
        raise NotFoundError("Session", event.session_id)
    return event.session_id, False


# ── Operations ─────────────────────────────────────────────────────────────────
async def record_event(
    stores: Stores, event: TrackEventIn, now: datetime | None = None
) -> TrackEventResult:
    now = ensure_utc(now) if now is not None else utcnow()

    with tracking_context(user_id=event.user_id, session_id=event.session_id):
        existing = await stores.analytics.get_aggregate(event.user_id)
        is_new_user = existing is None

        session_id, created_session = await resolve_session(stores, event, is_new_user, now)
        page_view = await stores.page_views.create_page_view(
            session_id, event.page_url, event.page_title, now
        )

        def apply(aggregate: UserAnalytics | None) -> UserAnalytics:
            if aggregate is None:
                return UserAnalytics(
                    user_id=event.user_id,
                    total_sessions=1,
                    total_page_views=1,
                    total_time_spent=0,
                    first_visit=now,
                    last_visit=now,
                    page_views_per_session=pages_per_session(1, 1),
                    average_session_duration=Decimal("0.00"),
                    created_at=now,
                    updated_at=now,
                )
            if created_session:
                aggregate.total_sessions += 1
            aggregate.total_page_views += 1
            aggregate.page_views_per_session = pages_per_session(
                aggregate.total_page_views, aggregate.total_sessions
            )
            aggregate.last_visit = now
            aggregate.updated_at = now
            return aggregate

        await stores.analytics.upsert_aggregate(event.user_id, apply)

        logger.info(
            "tracking.event_recorded",
            session_id=session_id,
            page_view_id=page_view.id,
            new_session=created_session,
            is_new_user=is_new_user,
        )
    return TrackEventResult(session_id=session_id, page_view_id=page_view.id)


async def close_page_view(
    stores: Stores, page_view_id: str, exit_time: datetime
) -> PageView:
    exit_time = ensure_utc(exit_time)

    page_view = await stores.page_views.get_page_view(page_view_id)
    time_spent = compute_time_spent(page_view.entry_time, exit_time)
    page_view = await stores.page_views.close_page_view(page_view_id, exit_time, time_spent)

    session = await stores.sessions.get_session(page_view.session_id)

    def apply(aggregate: UserAnalytics | None) -> UserAnalytics | None:
        if aggregate is None:
            return None
        aggregate.total_time_spent += time_spent
        aggregate.last_visit = exit_time
        # Incremental rule: each close adds its share to the running average
        if aggregate.total_sessions > 0:
            average = Decimal(aggregate.average_session_duration) + (
                Decimal(time_spent) / Decimal(aggregate.total_sessions)
            )
            aggregate.average_session_duration = average.quantize(
                TWO_PLACES, rounding=ROUND_HALF_UP
            )
        aggregate.updated_at = utcnow()
        return aggregate

    with tracking_context(user_id=session.user_id, session_id=session.id):
        updated = await stores.analytics.upsert_aggregate(session.user_id, apply)

        logger.info(
            "tracking.page_view_closed",
            page_view_id=page_view_id,
            time_spent=time_spent,
            aggregate_updated=updated is not None,
        )
    return page_view
