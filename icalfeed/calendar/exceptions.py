"""Exception hierarchy for calendar feed processing.

Errors are grouped by the level that is expected to catch them:

- ``CalendarDataError`` and ``EventSetError`` are raised while normalizing a
  single document and are caught per event / per series.
- ``RecurrenceRuleError`` is never fatal to an event; the normalizer downgrades
  the event to non-recurring. A rule that fails only during expansion drops
  its series from that one document.
- ``SourceError`` is caught by the feed aggregator per calendar source.
- ``RequestError`` is the only family that reaches the HTTP caller.
"""

from typing import Optional


class IcalFeedError(Exception):
    """Base exception for all icalfeed errors."""


# Document-level data errors


class CalendarDataError(IcalFeedError):
    """A calendar component contains data that cannot be normalized."""


class MalformedValue(CalendarDataError):
    """A raw value does not match the expected date or timestamp pattern."""

    def __init__(self, message: str, value: Optional[str] = None):
        super().__init__(message)
        self.value = value


class MissingTimezoneContext(CalendarDataError):
    """A local timestamp cannot be pinned to a timezone.

    Raised when:
    - The value has no trailing ``Z`` and no TZID parameter
    - The TZID parameter carries more than one value
    """


class UnknownTimezone(MissingTimezoneContext):
    """TZID is neither defined in the document nor a known IANA zone."""

    def __init__(self, timezone_id: str):
        super().__init__(f"Unknown timezone: {timezone_id}")
        self.timezone_id = timezone_id


class MissingRequiredProperty(CalendarDataError):
    """A required event property is missing or empty."""

    def __init__(self, name: str):
        super().__init__(f"{name} is missing")
        self.name = name


class MixedRangeVariants(CalendarDataError):
    """Start and end of a time range are not both dates or both instants."""


# Series errors


class EventSetError(IcalFeedError):
    """Events sharing a UID cannot be combined into one series."""


class EmptySeries(EventSetError):
    """No events were supplied for a series."""


class MultipleMasters(EventSetError):
    """More than one event in a series lacks a RECURRENCE-ID."""


class NoMaster(EventSetError):
    """Every event in a series carries a RECURRENCE-ID."""


class OverrideWithoutRecurrence(EventSetError):
    """A series has overrides but its master has no recurrence rule."""


# Recurrence rule errors (non-fatal for events)


class RecurrenceRuleError(IcalFeedError):
    """Base class for RRULE problems."""


class RecurrenceRuleParseError(RecurrenceRuleError):
    """RRULE text cannot be parsed."""


class RecurrenceRuleValidationError(RecurrenceRuleError):
    """RRULE parsed but is inconsistent with the event start."""


class RecurrenceExpansionError(RecurrenceRuleError):
    """A validated rule failed while generating occurrences."""


# Source errors


class SourceError(IcalFeedError):
    """A calendar source could not contribute events."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class SourceUnavailable(SourceError):
    """Network or transport failure while retrieving a source."""

    def __init__(
        self, message: str, source: Optional[str] = None, status_code: Optional[int] = None
    ):
        super().__init__(message, source)
        self.status_code = status_code


class SourceMalformed(SourceError):
    """Retrieved source body is not a parsable calendar document."""


# Request errors


class RequestError(IcalFeedError):
    """Caller input is invalid. Surfaced to the HTTP client."""

    status_code = 400


class InvalidFeedToken(RequestError):
    """Token is missing or does not match any configured feed."""

    status_code = 404


class InvalidWindow(RequestError):
    """Requested query window cannot be parsed."""

    status_code = 400
