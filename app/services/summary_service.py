"""
Summary report over a filtered set of sessions and their page views.

`summarize` is pure: it takes already-loaded sessions and page views and computes every
figure in memory, so the result does not depend on the order rows come back in: ties
in rankings are broken by page URL, country or browser name, ascending. `get_analytics_summary` loads the data through the
stores and hands it over.

Semantics worth knowing before reading the numbers:
  - new_users / returning_users count sessions, not distinct users
  - average_session_duration is a page-view-level mean over closed views
  - bounce_rate uses each matching session's full page-view count
  - page_url narrows top_pages only
  - browser percentages are shares of the summed per-browser user counts, so a user
    seen on two browsers counts in both and the shares still total 100
"""

from collections import Counter
from collections.abc import Sequence
from typing import Any

from app.core.config import settings
from app.core.logging import get_logger
from app.schemas.analytics import (
    AnalyticsFilters,
    AnalyticsSummary,
    BrowserShare,
    DeviceBreakdown,
    TopCountry,
    TopPage,
)
from app.services.filters import session_predicate
from app.services.user_agent import DeviceType
from app.stores.ports import Stores

logger = get_logger(__name__)


def _top_pages(page_views: Sequence[Any], page_url: str | None, top_n: int) -> list[TopPage]:
    views: dict[str, int] = {}
    sessions: dict[str, set[str]] = {}
    for pv in page_views:
        if page_url and pv.page_url != page_url:
            continue
        views[pv.page_url] = views.get(pv.page_url, 0) + 1
        sessions.setdefault(pv.page_url, set()).add(pv.session_id)

    ranked = sorted(views, key=lambda url: (-views[url], url))
    return [
        TopPage(page_url=url, views=views[url], unique_views=len(sessions[url]))
        for url in ranked[:top_n]
    ]


def _top_countries(sessions: Sequence[Any], top_n: int) -> list[TopCountry]:
    users: dict[str, set[str]] = {}
    counts: dict[str, int] = {}
    for s in sessions:
        if s.country is None:
            continue
        users.setdefault(s.country, set()).add(s.user_id)
        counts[s.country] = counts.get(s.country, 0) + 1

    ranked = sorted(users, key=lambda country: (-len(users[country]), country))
    return [
        TopCountry(country=country, users=len(users[country]), sessions=counts[country])
        for country in ranked[:top_n]
    ]


def _device_breakdown(sessions: Sequence[Any]) -> DeviceBreakdown:
    known = {d.value for d in DeviceType}
    counts = Counter(s.device_type for s in sessions if s.device_type in known)
    return DeviceBreakdown(**counts)


def _browser_breakdown(sessions: Sequence[Any]) -> list[BrowserShare]:
    users: dict[str, set[str]] = {}
    for s in sessions:
        users.setdefault(s.browser, set()).add(s.user_id)

    total = sum(len(u) for u in users.values())
    if total == 0:
        return []
    ranked = sorted(users, key=lambda browser: (-len(users[browser]), browser))
    return [
        BrowserShare(
            browser=browser,
            users=len(users[browser]),
            percentage=len(users[browser]) / total * 100,
        )
        for browser in ranked
    ]


def summarize(
    sessions: Sequence[Any],
    page_views: Sequence[Any],
    page_url: str | None = None,
    top_n: int = 10,
) -> AnalyticsSummary:
    session_ids = {s.id for s in sessions}
    views = [pv for pv in page_views if pv.session_id in session_ids]

    total_sessions = len(sessions)
    new_users = sum(1 for s in sessions if s.is_new_user)

    durations = [pv.time_spent for pv in views if pv.time_spent is not None]
    average_duration = sum(durations) / len(durations) if durations else 0.0

    views_per_session = Counter(pv.session_id for pv in views)
    bounces = sum(1 for s in sessions if views_per_session[s.id] == 1)
    bounce_rate = bounces / total_sessions * 100 if total_sessions else 0.0

    return AnalyticsSummary(
        total_users=len({s.user_id for s in sessions}),
        total_sessions=total_sessions,
        total_page_views=len(views),
        new_users=new_users,
        returning_users=total_sessions - new_users,
        average_session_duration=average_duration,
        bounce_rate=bounce_rate,
        top_pages=_top_pages(views, page_url, top_n),
        top_countries=_top_countries(sessions, top_n),
        device_breakdown=_device_breakdown(sessions),
        browser_breakdown=_browser_breakdown(sessions),
    )


async def get_analytics_summary(
    stores: Stores, filters: AnalyticsFilters | None = None, top_n: int | None = None
) -> AnalyticsSummary:
    predicate = session_predicate(filters)
    sessions = await stores.sessions.list_sessions(predicate)
    # Every page view of a matching session, whatever its own entry time
    page_views = await stores.page_views.list_page_views(predicate.scoped("session"))

    summary = summarize(
        sessions,
        page_views,
        page_url=filters.page_url if filters else None,
        top_n=top_n or settings.SUMMARY_TOP_N,
    )
    logger.info(
        "analytics.summary_computed",
        sessions=summary.total_sessions,
        page_views=summary.total_page_views,
        filters=filters.model_dump(exclude_none=True, mode="json") if filters else {},
    )
    return summary
