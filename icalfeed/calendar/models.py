"""Data models for calendar normalization and expansion."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from typing import TYPE_CHECKING, Callable, Optional, TypeVar, Union

from .exceptions import MixedRangeVariants

if TYPE_CHECKING:
    from .rrule_expander import RecurrenceSet

T = TypeVar("T")

# (tzid, naive local timestamp) -> aware UTC instant
LocalToUtc = Callable[[str, datetime], datetime]

# Parameter list as produced by the tokenizer: [(name, [value, ...]), ...]
RawParams = list[tuple[str, list[str]]]


@dataclass(frozen=True)
class DateValue:
    """A calendar date without time of day (VALUE=DATE)."""

    value: date

    def to_instant(self) -> datetime:
        """Return midnight of this date, treated as UTC midnight.

        This does not apply the calendar's real local offset.
        """
        return datetime.combine(self.value, time(0, 0), tzinfo=UTC)


@dataclass(frozen=True)
class InstantValue:
    """An absolute timestamp, always stored in UTC."""

    value: datetime

    def __post_init__(self) -> None:
        if self.value.tzinfo is None:
            raise ValueError("InstantValue requires a timezone-aware datetime")
        object.__setattr__(self, "value", self.value.astimezone(UTC))

    def to_instant(self) -> datetime:
        return self.value


TemporalValue = Union[DateValue, InstantValue]


@dataclass(frozen=True)
class TimeRange:
    """Start/end pair where both ends are the same TemporalValue variant."""

    start: TemporalValue
    end: TemporalValue

    def __post_init__(self) -> None:
        if type(self.start) is not type(self.end):
            raise MixedRangeVariants("Start and end must have equal types")

    @property
    def is_all_day(self) -> bool:
        return isinstance(self.start, DateValue)

    def fold(
        self,
        on_dates: Callable[[date, date], T],
        on_instants: Callable[[datetime, datetime], T],
    ) -> T:
        """Apply ``on_dates`` or ``on_instants`` depending on the range variant."""
        if isinstance(self.start, DateValue):
            return on_dates(self.start.value, self.end.value)  # type: ignore[arg-type]
        return on_instants(self.start.value, self.end.value)  # type: ignore[arg-type]

    def intersects(self, window_start: datetime, window_end: datetime) -> bool:
        """Inclusive overlap test against an absolute window.

        Date ranges compare against the UTC calendar dates of the window.
        """
        return self.fold(
            lambda s, e: window_end.astimezone(UTC).date() >= s
            and window_start.astimezone(UTC).date() <= e,
            lambda s, e: window_end >= s and window_start <= e,
        )

    def with_start(self, new_start: datetime) -> TimeRange:
        """Shift the range so it starts at ``new_start``, keeping duration and variant."""
        new_start = new_start.astimezone(UTC)

        def _shift_dates(s: date, e: date) -> TimeRange:
            start_date = new_start.date()
            return TimeRange(DateValue(start_date), DateValue(start_date + (e - s)))

        def _shift_instants(s: datetime, e: datetime) -> TimeRange:
            return TimeRange(InstantValue(new_start), InstantValue(new_start + (e - s)))

        return self.fold(_shift_dates, _shift_instants)


@dataclass
class CalendarEvent:
    """One decoded VEVENT, before grouping into a series."""

    uid: str
    range: TimeRange
    summary: str
    recurrence: Optional[RecurrenceSet] = None
    recurrence_id: Optional[TemporalValue] = None


@dataclass(frozen=True)
class EventOverride:
    """Replacement for a single generated occurrence of a series."""

    range: TimeRange
    summary: str
    recurrence_id: TemporalValue


@dataclass(frozen=True)
class PrimitiveEvent:
    """Concrete occurrence returned to callers."""

    range: TimeRange
    summary: str


# Tokenizer output


@dataclass
class RawProperty:
    """One content line: name, optional value and its parameters."""

    name: str
    value: Optional[str] = None
    params: RawParams = field(default_factory=list)


@dataclass
class RawComponent:
    """A BEGIN/END block with its properties and nested components."""

    name: str
    properties: list[RawProperty] = field(default_factory=list)
    components: list[RawComponent] = field(default_factory=list)

    def get(self, name: str) -> Optional[RawProperty]:
        """Return the last property with ``name``; later lines override earlier ones."""
        name = name.upper()
        found = None
        for prop in self.properties:
            if prop.name == name:
                found = prop
        return found

    def get_all(self, name: str) -> list[RawProperty]:
        name = name.upper()
        return [prop for prop in self.properties if prop.name == name]

    def subcomponents(self, name: str) -> list[RawComponent]:
        name = name.upper()
        return [comp for comp in self.components if comp.name == name]


@dataclass
class RawCalendar:
    """VTIMEZONE and VEVENT components of one VCALENDAR."""

    timezones: list[RawComponent] = field(default_factory=list)
    events: list[RawComponent] = field(default_factory=list)
