"""iCalendar parsing, timezone resolution and recurrence expansion."""

from .exceptions import IcalFeedError
from .models import DateValue, InstantValue, PrimitiveEvent, TimeRange
from .parser import build_occurrences, expand_document, parse_calendar_document

__all__ = [
    "DateValue",
    "IcalFeedError",
    "InstantValue",
    "PrimitiveEvent",
    "TimeRange",
    "build_occurrences",
    "expand_document",
    "parse_calendar_document",
]
