"""Calendar document processing: content lines to components to occurrences.

Tokenizing (line unfolding and ``NAME;PARAM=V:VALUE`` splitting) is delegated
to the icalendar library's content-line parser. Property values are kept as
written; TEXT unescaping happens once, in the event normalizer. Everything
after that works on the plain ``RawComponent`` tree so the temporal model
stays independent of icalendar's own property types.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Union

from icalendar.parser import Contentlines

from .event_parser import normalize_event
from .event_set import EventSet
from .exceptions import CalendarDataError, EventSetError, RecurrenceRuleError, SourceMalformed
from .models import CalendarEvent, PrimitiveEvent, RawCalendar, RawComponent, RawParams, RawProperty
from .timezone import TimezoneRegistry, build_timezone

logger = logging.getLogger(__name__)


def _to_raw_params(params) -> RawParams:  # type: ignore[no-untyped-def]
    result: RawParams = []
    for name, value in params.items():
        values = [value] if isinstance(value, str) else [str(v) for v in value]
        result.append((name.upper(), values))
    return result


def _raw_value(line: str) -> str:
    """Text after the first colon that is not inside a quoted parameter value."""
    in_quotes = False
    for index, char in enumerate(line):
        if char == '"':
            in_quotes = not in_quotes
        elif char == ":" and not in_quotes:
            return line[index + 1:]
    raise SourceMalformed(f"Content line without value: {line[:80]!r}")


def parse_components(text: Union[str, bytes]) -> list[RawComponent]:
    """Tokenize a document into its top-level components.

    Raises:
        SourceMalformed: A content line cannot be split, or BEGIN/END blocks
            are unbalanced
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")

    try:
        lines = Contentlines.from_ical(text)
    except ValueError as e:
        raise SourceMalformed(f"Invalid calendar content: {e}") from e

    roots: list[RawComponent] = []
    stack: list[RawComponent] = []

    for line in lines:
        if not line or not line.strip():
            continue
        if ":" not in line:
            raise SourceMalformed(f"Content line without value: {line[:80]!r}")
        try:
            name, params, _ = line.parts()
        except ValueError as e:
            raise SourceMalformed(f"Invalid content line: {line[:80]!r}") from e
        value = _raw_value(line)

        name = name.upper()
        if name == "BEGIN":
            stack.append(RawComponent(name=value.strip().upper()))
        elif name == "END":
            component_name = value.strip().upper()
            if not stack or stack[-1].name != component_name:
                raise SourceMalformed(f"Unexpected END:{component_name}")
            component = stack.pop()
            if stack:
                stack[-1].components.append(component)
            else:
                roots.append(component)
        elif stack:
            stack[-1].properties.append(
                RawProperty(name=name, value=value, params=_to_raw_params(params))
            )
        else:
            raise SourceMalformed(f"Property {name} outside of any component")

    if stack:
        raise SourceMalformed(f"Missing END:{stack[-1].name}")

    return roots


def parse_calendar_document(text: Union[str, bytes]) -> RawCalendar:
    """Parse iCalendar text into its VTIMEZONE and VEVENT components.

    Args:
        text: Raw document as fetched

    Returns:
        RawCalendar collecting components of every VCALENDAR in the document

    Raises:
        SourceMalformed: Document is not a parsable VCALENDAR
    """
    calendars = [c for c in parse_components(text) if c.name == "VCALENDAR"]
    if not calendars:
        raise SourceMalformed("Document contains no VCALENDAR")

    raw = RawCalendar()
    for calendar in calendars:
        raw.timezones.extend(calendar.subcomponents("VTIMEZONE"))
        raw.events.extend(calendar.subcomponents("VEVENT"))

    logger.debug(
        "Parsed calendar document: %d timezones, %d events",
        len(raw.timezones),
        len(raw.events),
    )
    return raw


def build_timezone_registry(raw: RawCalendar) -> TimezoneRegistry:
    """Build every VTIMEZONE of the document. Malformed zones are logged and skipped."""
    registry = TimezoneRegistry()
    for component in raw.timezones:
        try:
            registry.add(build_timezone(component))
        except CalendarDataError as e:
            tzid = component.get("TZID")
            logger.error(
                "Skipping malformed timezone %s: %s",
                tzid.value if tzid is not None else "<no TZID>",
                e,
            )
    logger.debug("Built %d of %d timezones", len(registry), len(raw.timezones))
    return registry


def normalize_events(
    raw: RawCalendar, registry: TimezoneRegistry
) -> dict[str, list[CalendarEvent]]:
    """Normalize every VEVENT and group the results by UID in first-seen order.

    Events that cannot be normalized are logged and dropped.
    """
    grouped: dict[str, list[CalendarEvent]] = {}
    for component in raw.events:
        try:
            event = normalize_event(component, registry.resolve)
        except CalendarDataError as e:
            uid = component.get("UID")
            logger.error(
                "Skipping event %s: %s",
                uid.value if uid is not None else "<no UID>",
                e,
            )
            continue
        grouped.setdefault(event.uid, []).append(event)
    return grouped


def build_event_sets(grouped: dict[str, list[CalendarEvent]]) -> list[EventSet]:
    """Combine each UID group into an EventSet. Invalid series are logged and dropped."""
    event_sets = []
    for uid, events in grouped.items():
        try:
            event_sets.append(EventSet.build(uid, events))
        except EventSetError as e:
            logger.error("Skipping event series %s: %s", uid, e)
    return event_sets


def build_occurrences(
    raw: RawCalendar, window_start: datetime, window_end: datetime
) -> list[PrimitiveEvent]:
    """Resolve a parsed document into the occurrences within the window.

    A series whose rule fails during expansion is logged and left out.

    Args:
        raw: Parsed document
        window_start: Aware UTC window start
        window_end: Aware UTC window end

    Returns:
        Occurrences in series first-seen order, then generation order
    """
    registry = build_timezone_registry(raw)
    event_sets = build_event_sets(normalize_events(raw, registry))

    occurrences: list[PrimitiveEvent] = []
    for event_set in event_sets:
        try:
            occurrences.extend(event_set.occurrences(window_start, window_end))
        except RecurrenceRuleError as e:
            logger.error("Skipping event series %s: %s", event_set.uid, e)
    return occurrences


def expand_document(
    text: Union[str, bytes], window_start: datetime, window_end: datetime
) -> list[PrimitiveEvent]:
    """Parse a raw document and expand it against the window in one step."""
    return build_occurrences(parse_calendar_document(text), window_start, window_end)
