"""
Request / response schemas for tracking and reporting.

Numeric fixed-point columns arrive as Decimal and leave as float; timestamps always
leave as aware UTC values.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, BeforeValidator, Field

from app.core.clock import ensure_utc


def _decimal_to_float(value: Any) -> Any:
    return float(value) if isinstance(value, Decimal) else value


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
FixedPoint = Annotated[float, BeforeValidator(_decimal_to_float)]


# ── Ingestion ──────────────────────────────────────────────────────────────────
class Geolocation(BaseModel):
    country: str | None = Field(default=None, max_length=100)
    city: str | None = Field(default=None, max_length=100)
    latitude: float | None = Field(default=None, ge=-90, le=90, allow_inf_nan=False)
    longitude: float | None = Field(default=None, ge=-180, le=180, allow_inf_nan=False)


class TrackEventIn(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=255)
    session_id: str | None = Field(default=None, max_length=36)
    page_url: str = Field(..., min_length=1)
    page_title: str
    ip_address: str = Field(..., max_length=64)
    user_agent: str
    referrer: str | None = None
    geolocation: Geolocation | None = None


class TrackEventResult(BaseModel):
    session_id: str
    page_view_id: str


class EndPageViewIn(BaseModel):
    page_view_id: str = Field(..., min_length=1, max_length=36)
    exit_time: UtcDatetime


# ── Query filters ──────────────────────────────────────────────────────────────
class AnalyticsFilters(BaseModel):
    start_date: UtcDatetime | None = None
    end_date: UtcDatetime | None = None
    country: str | None = None
    device_type: str | None = None
    page_url: str | None = None
    is_new_user: bool | None = None


# ── Entities ───────────────────────────────────────────────────────────────────
class SessionOut(BaseModel):
    id: str
    user_id: str
    is_new_user: bool
    ip_address: str
    user_agent: str
    device_type: str
    operating_system: str
    browser: str
    country: str | None
    city: str | None
    latitude: FixedPoint | None
    longitude: FixedPoint | None
    referrer: str | None
    created_at: UtcDatetime
    updated_at: UtcDatetime

    model_config = {"from_attributes": True}


class PageViewOut(BaseModel):
    id: str
    session_id: str
    page_url: str
    page_title: str
    entry_time: UtcDatetime
    exit_time: UtcDatetime | None
    time_spent: int | None

    model_config = {"from_attributes": True}


class UserAnalyticsOut(BaseModel):
    id: str
    user_id: str
    total_sessions: int
    total_page_views: int
    total_time_spent: int
    first_visit: UtcDatetime
    last_visit: UtcDatetime
    page_views_per_session: FixedPoint
    average_session_duration: FixedPoint
    created_at: UtcDatetime
    updated_at: UtcDatetime

    model_config = {"from_attributes": True}


# ── Summary report ─────────────────────────────────────────────────────────────
class TopPage(BaseModel):
    page_url: str
    views: int
    unique_views: int


class TopCountry(BaseModel):
    country: str
    users: int
    sessions: int


class DeviceBreakdown(BaseModel):
    desktop: int = 0
    mobile: int = 0
    tablet: int = 0


class BrowserShare(BaseModel):
    browser: str
    users: int
    percentage: float


class AnalyticsSummary(BaseModel):
    total_users: int
    total_sessions: int
    total_page_views: int
    new_users: int
    returning_users: int
    average_session_duration: float
    bounce_rate: float
    top_pages: list[TopPage]
    top_countries: list[TopCountry]
    device_breakdown: DeviceBreakdown
    browser_breakdown: list[BrowserShare]
