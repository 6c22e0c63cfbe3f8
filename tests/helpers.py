"""
Seed helpers: write rows straight through an AsyncSession, bypassing the services.
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.analytics import PageView, UserAnalytics, UserSession


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


async def add_session(db: AsyncSession, **overrides) -> UserSession:
    fields = {
        "user_id": "user1",
        "is_new_user": True,
        "ip_address": "192.168.1.1",
        "user_agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64)",
        "device_type": "desktop",
        "operating_system": "Windows",
        "browser": "Chrome",
        "country": "USA",
        "city": "New York",
        "latitude": Decimal("40.7128"),
        "longitude": Decimal("-74.0060"),
        "referrer": None,
        "created_at": utc(2024, 1, 15, 10, 0),
        "updated_at": utc(2024, 1, 15, 10, 0),
    }
    fields.update(overrides)
    session = UserSession(**fields)
    db.add(session)
    await db.commit()
    return session


async def add_page_view(db: AsyncSession, session_id: str, **overrides) -> PageView:
    fields = {
        "session_id": session_id,
        "page_url": "/home",
        "page_title": "Home Page",
        "entry_time": utc(2024, 1, 15, 10, 0),
        "exit_time": None,
        "time_spent": None,
    }
    fields.update(overrides)
    page_view = PageView(**fields)
    db.add(page_view)
    await db.commit()
    return page_view


async def add_aggregate(db: AsyncSession, user_id: str, **overrides) -> UserAnalytics:
    fields = {
        "user_id": user_id,
        "total_sessions": 1,
        "total_page_views": 1,
        "total_time_spent": 0,
        "first_visit": utc(2024, 1, 1),
        "last_visit": utc(2024, 1, 2),
        "page_views_per_session": Decimal("1.00"),
        "average_session_duration": Decimal("0.00"),
    }
    fields.update(overrides)
    aggregate = UserAnalytics(**fields)
    db.add(aggregate)
    await db.commit()
    return aggregate
