"""Shared fixtures: iCalendar documents and configuration snapshots."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime

import pytest

from icalfeed.core.config_manager import AppConfig
from icalfeed.core.http_client import close_all_clients

NEW_YORK_VTIMEZONE = """BEGIN:VTIMEZONE
TZID:America/New_York
BEGIN:DAYLIGHT
DTSTART:19670430T020000
RRULE:FREQ=YEARLY;BYMONTH=4;BYDAY=-1SU;UNTIL=19730429T070000Z
TZOFFSETFROM:-0500
TZOFFSETTO:-0400
TZNAME:EDT
END:DAYLIGHT
BEGIN:STANDARD
DTSTART:19671029T020000
RRULE:FREQ=YEARLY;BYMONTH=10;BYDAY=-1SU;UNTIL=20061029T060000Z
TZOFFSETFROM:-0400
TZOFFSETTO:-0500
TZNAME:EST
END:STANDARD
BEGIN:DAYLIGHT
DTSTART:19740106T020000
RDATE:19750223T020000
TZOFFSETFROM:-0500
TZOFFSETTO:-0400
TZNAME:EDT
END:DAYLIGHT
BEGIN:DAYLIGHT
DTSTART:19760425T020000
RRULE:FREQ=YEARLY;BYMONTH=4;BYDAY=-1SU;UNTIL=19860427T070000Z
TZOFFSETFROM:-0500
TZOFFSETTO:-0400
TZNAME:EDT
END:DAYLIGHT
BEGIN:DAYLIGHT
DTSTART:19870405T020000
RRULE:FREQ=YEARLY;BYMONTH=4;BYDAY=1SU;UNTIL=20060402T070000Z
TZOFFSETFROM:-0500
TZOFFSETTO:-0400
TZNAME:EDT
END:DAYLIGHT
BEGIN:DAYLIGHT
DTSTART:20070311T020000
RRULE:FREQ=YEARLY;BYMONTH=3;BYDAY=2SU
TZOFFSETFROM:-0500
TZOFFSETTO:-0400
TZNAME:EDT
END:DAYLIGHT
BEGIN:STANDARD
DTSTART:20071104T020000
RRULE:FREQ=YEARLY;BYMONTH=11;BYDAY=1SU
TZOFFSETFROM:-0400
TZOFFSETTO:-0500
TZNAME:EST
END:STANDARD
END:VTIMEZONE
"""

MOSCOW_VTIMEZONE = """BEGIN:VTIMEZONE
TZID:Europe/Moscow
BEGIN:STANDARD
DTSTART:19961027T030000
RRULE:FREQ=YEARLY;BYMONTH=10;BYDAY=-1SU;UNTIL=20101030T230000Z
TZOFFSETFROM:+0400
TZOFFSETTO:+0300
TZNAME:MSK
END:STANDARD
BEGIN:DAYLIGHT
DTSTART:19930328T020000
RRULE:FREQ=YEARLY;BYMONTH=3;BYDAY=-1SU;UNTIL=20100327T230000Z
TZOFFSETFROM:+0300
TZOFFSETTO:+0400
TZNAME:MSD
END:DAYLIGHT
BEGIN:STANDARD
DTSTART:20110327T020000
RDATE:20110327T020000
TZOFFSETFROM:+0300
TZOFFSETTO:+0400
TZNAME:MSK
END:STANDARD
BEGIN:STANDARD
DTSTART:20141026T020000
RDATE:20141026T020000
TZOFFSETFROM:+0400
TZOFFSETTO:+0300
TZNAME:MSK
END:STANDARD
END:VTIMEZONE
"""

RECURRING_EVENTS = """BEGIN:VEVENT
UID:weekly-sync
DTSTART;TZID=America/New_York:20240101T100000
DTEND;TZID=America/New_York:20240101T110000
RRULE:FREQ=WEEKLY;COUNT=5
SUMMARY:Weekly sync
END:VEVENT
BEGIN:VEVENT
UID:weekly-sync
RECURRENCE-ID;TZID=America/New_York:20240115T100000
DTSTART;TZID=America/New_York:20240115T140000
DTEND;TZID=America/New_York:20240115T150000
SUMMARY:Weekly sync (moved)
END:VEVENT
BEGIN:VEVENT
UID:holiday
DTSTART;VALUE=DATE:20240110
DTEND;VALUE=DATE:20240111
SUMMARY:Company holiday\\, office closed
END:VEVENT
BEGIN:VEVENT
UID:standup
DTSTART;VALUE=DATE:20240101
DTEND;VALUE=DATE:20240102
RRULE:FREQ=DAILY;UNTIL=20240105
SUMMARY:Focus day
END:VEVENT
BEGIN:VEVENT
UID:review
DTSTART:20240120T090000Z
DTEND:20240120T100000Z
SUMMARY:Quarterly review
END:VEVENT
"""


def wrap_calendar(*blocks: str) -> str:
    """Wrap VTIMEZONE/VEVENT blocks in a VCALENDAR with CRLF line endings."""
    body = "".join(blocks)
    text = "BEGIN:VCALENDAR\nVERSION:2.0\nPRODID:-//icalfeed//tests//EN\n" + body + "END:VCALENDAR\n"
    return text.replace("\n", "\r\n")


@pytest.fixture
def new_york_calendar() -> str:
    return wrap_calendar(NEW_YORK_VTIMEZONE)


@pytest.fixture
def moscow_calendar() -> str:
    return wrap_calendar(MOSCOW_VTIMEZONE)


@pytest.fixture
def sample_calendar() -> str:
    """New York zone plus a recurring series with one override, all-day and UTC events."""
    return wrap_calendar(NEW_YORK_VTIMEZONE, RECURRING_EVENTS)


@pytest.fixture
def january_window() -> tuple[datetime, datetime]:
    return (
        datetime(2023, 12, 31, tzinfo=UTC),
        datetime(2024, 2, 1, tzinfo=UTC),
    )


@pytest.fixture
def app_config() -> AppConfig:
    """Two feeds; the first merges two calendars."""
    return AppConfig.model_validate(
        {
            "feeds": [
                {
                    "name": "Family",
                    "tokens": {"private": "family-private", "public": "family-public"},
                    "calendars": [
                        {"name": "work", "url": "https://cal.example.com/work.ics"},
                        {"name": "home", "url": "https://cal.example.com/home.ics"},
                    ],
                },
                {
                    "name": "Club",
                    "tokens": {"private": "club-private", "public": "club-public"},
                    "calendars": [{"url": "https://cal.example.com/club.ics"}],
                },
            ]
        }
    )


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after every test to prevent resource leaks."""
    yield
    await close_all_clients()


@pytest.fixture
def make_calendar():
    """Factory wrapping VTIMEZONE/VEVENT blocks into a VCALENDAR document."""
    return wrap_calendar


@pytest.fixture
def new_york_vtimezone() -> str:
    return NEW_YORK_VTIMEZONE
