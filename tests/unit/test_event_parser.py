"""Unit tests for VEVENT normalization."""

import logging
from datetime import UTC, date, datetime, timedelta

import pytest

from icalfeed.calendar.event_parser import normalize_event
from icalfeed.calendar.exceptions import (
    MissingRequiredProperty,
    MissingTimezoneContext,
    MixedRangeVariants,
)
from icalfeed.calendar.models import DateValue, InstantValue, RawComponent, RawProperty

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def utc_resolver(tzid, local):
    offsets = {"Etc/Plus2": timedelta(hours=2)}
    return (local - offsets[tzid]).replace(tzinfo=UTC)


def make_event(*lines):
    """Build a VEVENT from (name, value) or (name, params, value) tuples."""
    properties = []
    for line in lines:
        if len(line) == 2:
            name, value = line
            params = []
        else:
            name, params, value = line
        properties.append(RawProperty(name=name, value=value, params=params))
    return RawComponent(name="VEVENT", properties=properties)


BASE = (
    ("UID", "evt-1"),
    ("DTSTART", "20240301T090000Z"),
    ("DTEND", "20240301T100000Z"),
    ("SUMMARY", "Planning"),
)


def test_normalizes_utc_event():
    event = normalize_event(make_event(*BASE), utc_resolver)
    assert event.uid == "evt-1"
    assert event.summary == "Planning"
    assert event.range.start == InstantValue(datetime(2024, 3, 1, 9, tzinfo=UTC))
    assert event.recurrence is None
    assert event.recurrence_id is None


def test_local_times_go_through_resolver():
    event = normalize_event(
        make_event(
            ("UID", "evt-2"),
            ("DTSTART", [("TZID", ["Etc/Plus2"])], "20240301T090000"),
            ("DTEND", [("TZID", ["Etc/Plus2"])], "20240301T100000"),
            ("SUMMARY", "Local"),
        ),
        utc_resolver,
    )
    assert event.range.start.value == datetime(2024, 3, 1, 7, tzinfo=UTC)


@pytest.mark.parametrize("missing", ["UID", "DTSTART", "DTEND", "SUMMARY"])
def test_required_properties(missing):
    lines = [line for line in BASE if line[0] != missing]
    with pytest.raises(MissingRequiredProperty, match=missing):
        normalize_event(make_event(*lines), utc_resolver)


def test_empty_summary_counts_as_missing():
    lines = [line for line in BASE if line[0] != "SUMMARY"] + [("SUMMARY", "  ")]
    with pytest.raises(MissingRequiredProperty):
        normalize_event(make_event(*lines), utc_resolver)


def test_mixed_start_and_end_rejected():
    with pytest.raises(MixedRangeVariants):
        normalize_event(
            make_event(
                ("UID", "evt-3"),
                ("DTSTART", [("VALUE", ["DATE"])], "20240301"),
                ("DTEND", "20240302T000000Z"),
                ("SUMMARY", "Mixed"),
            ),
            utc_resolver,
        )


def test_floating_time_without_tzid_rejected():
    with pytest.raises(MissingTimezoneContext):
        normalize_event(
            make_event(
                ("UID", "evt-4"),
                ("DTSTART", "20240301T090000"),
                ("DTEND", "20240301T100000"),
                ("SUMMARY", "Floating"),
            ),
            utc_resolver,
        )


def test_invalid_rrule_is_dropped_with_warning(caplog):
    lines = BASE + (("RRULE", "FREQ=DAILY;COUNT=2;UNTIL=20240310T000000Z"),)
    with caplog.at_level(logging.WARNING, logger="icalfeed"):
        event = normalize_event(make_event(*lines), utc_resolver)
    assert event.recurrence is None
    assert "Ignoring RRULE for event evt-1" in caplog.text


def test_all_day_until_is_pinned_to_utc_midnight():
    event = normalize_event(
        make_event(
            ("UID", "evt-5"),
            ("DTSTART", [("VALUE", ["DATE"])], "20240101"),
            ("DTEND", [("VALUE", ["DATE"])], "20240102"),
            ("RRULE", "FREQ=DAILY;UNTIL=20240103"),
            ("SUMMARY", "All day"),
        ),
        utc_resolver,
    )
    assert event.range.start == DateValue(date(2024, 1, 1))
    assert event.recurrence.rule.until == "20240103T000000Z"
    starts, _ = event.recurrence.between(
        datetime(2023, 12, 31, tzinfo=UTC), datetime(2024, 2, 1, tzinfo=UTC)
    )
    assert [s.date() for s in starts] == [date(2024, 1, d) for d in (1, 2, 3)]


def test_recurrence_id_and_escaped_text():
    event = normalize_event(
        make_event(
            ("UID", "evt\\;6"),
            ("RECURRENCE-ID", "20240301T090000Z"),
            ("DTSTART", "20240301T120000Z"),
            ("DTEND", "20240301T130000Z"),
            ("SUMMARY", "Lunch\\, moved"),
        ),
        utc_resolver,
    )
    assert event.uid == "evt;6"
    assert event.summary == "Lunch, moved"
    assert event.recurrence_id == InstantValue(datetime(2024, 3, 1, 9, tzinfo=UTC))
