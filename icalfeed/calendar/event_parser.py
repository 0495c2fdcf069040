"""VEVENT normalization: raw component to CalendarEvent."""

from __future__ import annotations

import logging
from typing import Optional

from .datetime_utils import parse_temporal_value, unescape_text
from .exceptions import MissingRequiredProperty, RecurrenceRuleError
from .models import CalendarEvent, LocalToUtc, RawComponent, RawProperty, TemporalValue, TimeRange
from .rrule_expander import RecurrenceRule, RecurrenceSet

logger = logging.getLogger(__name__)


def _required(component: RawComponent, name: str) -> RawProperty:
    prop = component.get(name)
    if prop is None or prop.value is None or not prop.value.strip():
        raise MissingRequiredProperty(name)
    return prop


def _temporal(prop: RawProperty, resolver: LocalToUtc) -> TemporalValue:
    return parse_temporal_value(prop.value or "", prop.params, resolver)


def _parse_recurrence(
    raw_rule: str, time_range: TimeRange, uid: str
) -> Optional[RecurrenceSet]:
    """Parse and validate an RRULE. Failures are logged and yield no recurrence."""
    try:
        rule = RecurrenceRule.parse(raw_rule)
        if time_range.is_all_day:
            rule = rule.pin_until_to_utc_midnight()
        return rule.validate(time_range.start.to_instant())
    except RecurrenceRuleError as e:
        logger.warning("Ignoring RRULE for event %s: %s", uid, e)
        return None


def normalize_event(raw_event: RawComponent, resolver: LocalToUtc) -> CalendarEvent:
    """Decode one VEVENT into a CalendarEvent.

    Args:
        raw_event: VEVENT component from the tokenizer
        resolver: Converts ``(tzid, naive local time)`` into a UTC instant

    Returns:
        CalendarEvent with validated recurrence (if any)

    Raises:
        MissingRequiredProperty: UID, DTSTART, DTEND or SUMMARY is missing or empty
        MalformedValue: A date or timestamp cannot be parsed
        MissingTimezoneContext: A local timestamp has no usable TZID
        MixedRangeVariants: DTSTART and DTEND are not the same kind of value
    """
    uid = unescape_text(_required(raw_event, "UID").value or "")
    start = _temporal(_required(raw_event, "DTSTART"), resolver)
    end = _temporal(_required(raw_event, "DTEND"), resolver)
    summary = unescape_text(_required(raw_event, "SUMMARY").value or "")

    time_range = TimeRange(start, end)

    recurrence = None
    rrule_prop = raw_event.get("RRULE")
    if rrule_prop is not None and rrule_prop.value:
        recurrence = _parse_recurrence(rrule_prop.value, time_range, uid)

    recurrence_id = None
    recurrence_id_prop = raw_event.get("RECURRENCE-ID")
    if recurrence_id_prop is not None and recurrence_id_prop.value:
        recurrence_id = _temporal(recurrence_id_prop, resolver)

    return CalendarEvent(
        uid=uid,
        range=time_range,
        summary=summary,
        recurrence=recurrence,
        recurrence_id=recurrence_id,
    )
