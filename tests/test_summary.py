"""
Summary report: four sessions from three visitors, seven page views.

  user1  USA     desktop Chrome   2024-01-15  /home /products /about
  user1  USA     mobile  Safari   2024-01-16  /home
  user2  Canada  desktop Firefox  2024-01-17  /products /contact
  user3  UK      tablet  Safari   2024-01-18  /home
"""

from types import SimpleNamespace

import pytest
import pytest_asyncio

from app.core.errors import InputValidationError
from app.schemas.analytics import AnalyticsFilters
from app.services.summary_service import get_analytics_summary, summarize
from tests.helpers import add_page_view, add_session, utc


@pytest_asyncio.fixture
async def visits(db_session):
    s1 = await add_session(
        db_session, user_id="user1", created_at=utc(2024, 1, 15, 10, 0),
        device_type="desktop", browser="Chrome", country="USA",
    )
    s2 = await add_session(
        db_session, user_id="user1", is_new_user=False, created_at=utc(2024, 1, 16, 14, 30),
        device_type="mobile", operating_system="iOS", browser="Safari", country="USA",
    )
    s3 = await add_session(
        db_session, user_id="user2", created_at=utc(2024, 1, 17, 9, 15),
        device_type="desktop", operating_system="macOS", browser="Firefox", country="Canada",
    )
    s4 = await add_session(
        db_session, user_id="user3", created_at=utc(2024, 1, 18, 16, 45),
        device_type="tablet", operating_system="iOS", browser="Safari", country="UK",
    )

    for session, url, entry, spent in [
        (s1, "/home", utc(2024, 1, 15, 10, 0), 150),
        (s1, "/products", utc(2024, 1, 15, 10, 2, 30), 150),
        (s1, "/about", utc(2024, 1, 15, 10, 5), 90),
        (s2, "/home", utc(2024, 1, 16, 14, 30), 30),
        (s3, "/products", utc(2024, 1, 17, 9, 15), 180),
        (s3, "/contact", utc(2024, 1, 17, 9, 18), 120),
        (s4, "/home", utc(2024, 1, 18, 16, 45), 15),
    ]:
        await add_page_view(db_session, session.id, page_url=url, entry_time=entry, time_spent=spent)

    return s1, s2, s3, s4


@pytest.mark.asyncio
class TestAnalyticsSummary:
    async def test_unfiltered_totals(self, stores, visits):
        summary = await get_analytics_summary(stores)

        assert summary.total_users == 3
        assert summary.total_sessions == 4
        assert summary.total_page_views == 7
        assert summary.new_users == 3
        assert summary.returning_users == 1
        assert summary.average_session_duration == pytest.approx(735 / 7)
        assert summary.bounce_rate == pytest.approx(50.0)

    async def test_top_pages(self, stores, visits):
        summary = await get_analytics_summary(stores)

        assert summary.top_pages[0].page_url == "/home"
        assert summary.top_pages[0].views == 3
        assert summary.top_pages[0].unique_views == 3
        assert summary.top_pages[1].page_url == "/products"
        assert summary.top_pages[1].views == 2
        assert {p.page_url for p in summary.top_pages} == {"/home", "/products", "/about", "/contact"}

    async def test_top_countries(self, stores, visits):
        summary = await get_analytics_summary(stores)

        usa = next(c for c in summary.top_countries if c.country == "USA")
        assert usa.users == 1
        assert usa.sessions == 2
        assert {c.country for c in summary.top_countries} == {"USA", "Canada", "UK"}

    async def test_device_and_browser_breakdown(self, stores, visits):
        summary = await get_analytics_summary(stores)

        assert summary.device_breakdown.desktop == 2
        assert summary.device_breakdown.mobile == 1
        assert summary.device_breakdown.tablet == 1

        shares = {b.browser: b for b in summary.browser_breakdown}
        assert summary.browser_breakdown[0].browser == "Safari"
        assert shares["Safari"].users == 2
        assert shares["Safari"].percentage == pytest.approx(50.0)
        assert shares["Chrome"].percentage == pytest.approx(25.0)
        assert shares["Firefox"].percentage == pytest.approx(25.0)

    async def test_date_window_uses_session_creation(self, stores, visits):
        filters = AnalyticsFilters(start_date=utc(2024, 1, 16), end_date=utc(2024, 1, 17, 23, 59, 59))
        summary = await get_analytics_summary(stores, filters)

        assert summary.total_sessions == 2
        assert summary.total_users == 2
        assert summary.total_page_views == 3

    async def test_country_filter(self, stores, visits):
        summary = await get_analytics_summary(stores, AnalyticsFilters(country="USA"))

        assert summary.total_users == 1
        assert summary.total_sessions == 2
        assert summary.total_page_views == 4
        assert [c.country for c in summary.top_countries] == ["USA"]

    async def test_device_filter(self, stores, visits):
        summary = await get_analytics_summary(stores, AnalyticsFilters(device_type="desktop"))

        assert summary.total_sessions == 2
        assert summary.device_breakdown.desktop == 2
        assert summary.device_breakdown.mobile == 0

    async def test_new_user_filter(self, stores, visits):
        summary = await get_analytics_summary(stores, AnalyticsFilters(is_new_user=True))

        assert summary.total_sessions == 3
        assert summary.new_users == 3
        assert summary.returning_users == 0

    async def test_page_url_narrows_top_pages_only(self, stores, visits):
        summary = await get_analytics_summary(stores, AnalyticsFilters(page_url="/home"))

        assert [p.page_url for p in summary.top_pages] == ["/home"]
        assert summary.top_pages[0].views == 3
        assert summary.total_page_views == 7

    async def test_combined_filters(self, stores, visits):
        filters = AnalyticsFilters(
            start_date=utc(2024, 1, 15), end_date=utc(2024, 1, 16), country="USA", device_type="desktop"
        )
        summary = await get_analytics_summary(stores, filters)

        assert summary.total_sessions == 1
        assert summary.total_page_views == 3
        assert summary.bounce_rate == 0.0

    async def test_top_n_limits_rankings(self, stores, visits):
        summary = await get_analytics_summary(stores, top_n=1)

        assert len(summary.top_pages) == 1
        assert len(summary.top_countries) == 1

    async def test_inverted_window_is_rejected(self, stores, visits):
        filters = AnalyticsFilters(start_date=utc(2024, 2, 1), end_date=utc(2024, 1, 1))
        with pytest.raises(InputValidationError):
            await get_analytics_summary(stores, filters)

    async def test_empty_store(self, stores):
        summary = await get_analytics_summary(stores)

        assert summary.total_sessions == 0
        assert summary.total_page_views == 0
        assert summary.average_session_duration == 0.0
        assert summary.bounce_rate == 0.0
        assert summary.top_pages == []
        assert summary.browser_breakdown == []


class TestSummarize:
    def _session(self, id, user_id, country, browser="Chrome", device_type="desktop"):
        return SimpleNamespace(
            id=id, user_id=user_id, country=country, browser=browser,
            device_type=device_type, is_new_user=True,
        )

    def _view(self, session_id, page_url="/home", time_spent=None):
        return SimpleNamespace(session_id=session_id, page_url=page_url, time_spent=time_spent)

    def test_null_country_is_left_out_of_rankings(self):
        sessions = [self._session("a", "u1", "USA"), self._session("b", "u2", None)]
        summary = summarize(sessions, [self._view("a"), self._view("b")])

        assert [c.country for c in summary.top_countries] == ["USA"]
        assert summary.total_sessions == 2

    def test_open_page_views_do_not_count_towards_average(self):
        sessions = [self._session("a", "u1", "USA")]
        views = [self._view("a", time_spent=60), self._view("a", time_spent=None)]

        summary = summarize(sessions, views)

        assert summary.average_session_duration == pytest.approx(60.0)
        assert summary.bounce_rate == 0.0

    def test_views_of_other_sessions_are_ignored(self):
        sessions = [self._session("a", "u1", "USA")]
        summary = summarize(sessions, [self._view("a"), self._view("zzz")])

        assert summary.total_page_views == 1
        assert summary.bounce_rate == pytest.approx(100.0)

    def test_user_on_two_browsers_counts_in_both(self):
        sessions = [
            self._session("a", "u1", "USA", browser="Chrome"),
            self._session("b", "u1", "USA", browser="Firefox"),
            self._session("c", "u2", "USA", browser="Chrome"),
        ]
        summary = summarize(sessions, [])

        shares = {b.browser: b.percentage for b in summary.browser_breakdown}
        assert shares["Chrome"] == pytest.approx(200 / 3)
        assert shares["Firefox"] == pytest.approx(100 / 3)
        assert sum(shares.values()) == pytest.approx(100.0)

    def test_unknown_device_types_are_not_counted(self):
        sessions = [self._session("a", "u1", "USA", device_type="console")]
        summary = summarize(sessions, [])

        assert summary.device_breakdown.model_dump() == {"desktop": 0, "mobile": 0, "tablet": 0}

    def test_tied_pages_at_the_cap_do_not_depend_on_row_order(self):
        sessions = [self._session("a", "u1", "USA")]
        views = [self._view("a", page_url="/y"), self._view("a", page_url="/x")]

        forward = summarize(sessions, views, top_n=1)
        backward = summarize(sessions, list(reversed(views)), top_n=1)

        assert [p.page_url for p in forward.top_pages] == ["/x"]
        assert forward.top_pages == backward.top_pages

    def test_tied_countries_and_browsers_sort_by_name(self):
        sessions = [
            self._session("a", "u1", "UK", browser="Safari"),
            self._session("b", "u2", "Canada", browser="Firefox"),
        ]

        for rows in (sessions, list(reversed(sessions))):
            summary = summarize(rows, [], top_n=1)
            assert [c.country for c in summary.top_countries] == ["Canada"]
            assert [b.browser for b in summary.browser_breakdown] == ["Firefox", "Safari"]
