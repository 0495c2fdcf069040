"""Fixtures for service and HTTP tests: an in-memory fetcher serving canned bodies."""

import asyncio
from collections import Counter

import pytest

from icalfeed.calendar.exceptions import SourceUnavailable


class FakeFetcher:
    """Serves bodies from a dict; unknown URLs fail like an unreachable host."""

    def __init__(self, bodies: dict[str, bytes], delay: float = 0.0):
        self.bodies = bodies
        self.delay = delay
        self.calls: Counter[str] = Counter()

    async def fetch(self, url: str) -> bytes:
        self.calls[url] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if url not in self.bodies:
            raise SourceUnavailable("connection refused", url)
        return self.bodies[url]


@pytest.fixture
def calendar_bodies(sample_calendar, make_calendar) -> dict[str, bytes]:
    home = make_calendar(
        "BEGIN:VEVENT\n"
        "UID:dentist\n"
        "DTSTART:20240116T130000Z\n"
        "DTEND:20240116T140000Z\n"
        "SUMMARY:Dentist\n"
        "END:VEVENT\n"
    )
    club = make_calendar(
        "BEGIN:VEVENT\n"
        "UID:club-night\n"
        "DTSTART:20240112T190000Z\n"
        "DTEND:20240112T210000Z\n"
        "SUMMARY:Club night\n"
        "END:VEVENT\n"
    )
    return {
        "https://cal.example.com/work.ics": sample_calendar.encode("utf-8"),
        "https://cal.example.com/home.ics": home.encode("utf-8"),
        "https://cal.example.com/club.ics": club.encode("utf-8"),
    }


@pytest.fixture
def fetcher_factory():
    return FakeFetcher


@pytest.fixture
def fake_fetcher(calendar_bodies) -> FakeFetcher:
    return FakeFetcher(calendar_bodies)
