"""
Composable query filters shared by every read path.

A FilterPredicate is an AND of typed predicate variants:

  DateRange    inclusive [start, end] on a timestamp field (either bound optional)
  FieldEquals  equality on a field
  FlagEquals   equality on a boolean field

Each variant can be evaluated against an in-memory record (`matches`) or compiled to a
SQLAlchemy clause (`clause`) given a mapping of field name → column. Stores pick the
columns; the predicate set itself stays independent of any store.

Field names may be dotted ("session.country") to reach a related record; stores that
support such fields join the related table.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Union

from sqlalchemy import ColumnElement, and_, true

from app.core.clock import ensure_utc
from app.core.errors import InputValidationError
from app.schemas.analytics import AnalyticsFilters

Columns = Mapping[str, Any]


def _value_of(record: Any, name: str) -> Any:
    for part in name.split("."):
        if record is None:
            return None
        if isinstance(record, Mapping):
            record = record.get(part)
        else:
            record = getattr(record, part, None)
    return record


@dataclass(frozen=True)
class DateRange:
    field: str
    start: datetime | None = None
    end: datetime | None = None

    def matches(self, record: Any) -> bool:
        value = _value_of(record, self.field)
        if value is None:
            return False
        value = ensure_utc(value)
        if self.start is not None and value < ensure_utc(self.start):
            return False
        if self.end is not None and value > ensure_utc(self.end):
            return False
        return True

    def clause(self, columns: Columns) -> ColumnElement[bool]:
        column = columns[self.field]
        parts = []
        if self.start is not None:
            parts.append(column >= ensure_utc(self.start))
        if self.end is not None:
            parts.append(column <= ensure_utc(self.end))
        return and_(true(), *parts)


@dataclass(frozen=True)
class FieldEquals:
    field: str
    value: Any

    def matches(self, record: Any) -> bool:
        return _value_of(record, self.field) == self.value

    def clause(self, columns: Columns) -> ColumnElement[bool]:
        return columns[self.field] == self.value


@dataclass(frozen=True)
class FlagEquals:
    field: str
    value: bool

    def matches(self, record: Any) -> bool:
        return bool(_value_of(record, self.field)) is self.value

    def clause(self, columns: Columns) -> ColumnElement[bool]:
        return columns[self.field].is_(self.value)


Predicate = Union[DateRange, FieldEquals, FlagEquals]


@dataclass(frozen=True)
class FilterPredicate:
    predicates: tuple[Predicate, ...] = field(default_factory=tuple)

    def matches(self, record: Any) -> bool:
        return all(p.matches(record) for p in self.predicates)

    def clauses(self, columns: Columns) -> list[ColumnElement[bool]]:
        return [p.clause(columns) for p in self.predicates]

    def fields(self) -> set[str]:
        return {p.field for p in self.predicates}

    def scoped(self, prefix: str) -> "FilterPredicate":
        """Re-target every predicate at a related record, e.g. scoped("session")."""
        return FilterPredicate(
            tuple(replace(p, field=f"{prefix}.{p.field}") for p in self.predicates)
        )

    def and_(self, *more: Predicate) -> "FilterPredicate":
        return FilterPredicate(self.predicates + tuple(more))

    def __bool__(self) -> bool:
        return bool(self.predicates)


MATCH_ALL = FilterPredicate()


# ── Builders: request filters → predicate sets per read path ───────────────────
def _check_window(filters: AnalyticsFilters) -> None:
    if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
        raise InputValidationError("start_date must not be after end_date", field="start_date")


def _window(name: str, filters: AnalyticsFilters) -> list[Predicate]:
    if filters.start_date is None and filters.end_date is None:
        return []
    return [DateRange(name, start=filters.start_date, end=filters.end_date)]


def _session_dimensions(filters: AnalyticsFilters) -> list[Predicate]:
    predicates: list[Predicate] = []
    if filters.country:
        predicates.append(FieldEquals("country", filters.country))
    if filters.device_type:
        predicates.append(FieldEquals("device_type", filters.device_type))
    if filters.is_new_user is not None:
        predicates.append(FlagEquals("is_new_user", filters.is_new_user))
    return predicates


def session_predicate(filters: AnalyticsFilters | None) -> FilterPredicate:
    """Sessions: creation window plus country / device / new-vs-returning."""
    if filters is None:
        return MATCH_ALL
    _check_window(filters)
    return FilterPredicate(
        tuple(_window("created_at", filters) + _session_dimensions(filters))
    )


def page_view_predicate(filters: AnalyticsFilters | None) -> FilterPredicate:
    """Page views: entry window and URL, plus the owning session's dimensions."""
    if filters is None:
        return MATCH_ALL
    _check_window(filters)
    predicates = _window("entry_time", filters)
    if filters.page_url:
        predicates.append(FieldEquals("page_url", filters.page_url))
    session_part = FilterPredicate(tuple(_session_dimensions(filters))).scoped("session")
    return FilterPredicate(tuple(predicates)).and_(*session_part.predicates)


def aggregate_predicate(filters: AnalyticsFilters | None) -> FilterPredicate:
    """Aggregates whose [first_visit, last_visit] span overlaps the requested window."""
    if filters is None:
        return MATCH_ALL
    _check_window(filters)
    predicates: list[Predicate] = []
    if filters.start_date is not None:
        predicates.append(DateRange("last_visit", start=filters.start_date))
    if filters.end_date is not None:
        predicates.append(DateRange("first_visit", end=filters.end_date))
    return FilterPredicate(tuple(predicates))
