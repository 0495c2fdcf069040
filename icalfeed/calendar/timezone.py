"""VTIMEZONE transition tables and local-to-UTC resolution.

A document's VTIMEZONE blocks describe each zone as a list of transitions
(STANDARD / DAYLIGHT sub-components). Every transition has a set of naive
local occurrences plus the offsets in force before and after it. Converting a
local timestamp means finding the most recent transition occurrence at or
before it and applying that transition's ``to`` offset.
"""

from __future__ import annotations

import logging
import zoneinfo
from bisect import bisect_right
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import ClassVar, Optional

from dateutil.rrule import rruleset, rrulestr

from .datetime_utils import (
    DATETIME_FORMAT,
    parse_naive_datetime,
    parse_utc_offset,
    unescape_text,
)
from .exceptions import MalformedValue, MissingRequiredProperty, MissingTimezoneContext, UnknownTimezone
from .models import RawComponent

logger = logging.getLogger(__name__)

TRANSITION_COMPONENTS = ("STANDARD", "DAYLIGHT")


def rewrite_transition_until(rrule_string: str, offset_from: timedelta) -> str:
    """Re-express a UTC ``UNTIL`` as naive local time in the ``from`` offset.

    Transition occurrences are naive local timestamps, so a UTC bound has to be
    shifted into the same frame before dateutil can compare them. Non-UTC
    bounds are left untouched.

    Args:
        rrule_string: RRULE value, e.g. ``FREQ=YEARLY;BYMONTH=10;UNTIL=20061029T060000Z``
        offset_from: Offset in force before the transition

    Returns:
        RRULE value with a floating ``UNTIL``
    """
    parts = []
    for part in rrule_string.split(";"):
        if "=" in part:
            key, value = part.split("=", 1)
            if key.strip().upper() == "UNTIL" and value.strip().upper().endswith("Z"):
                until_utc = parse_naive_datetime(value.strip()[:-1])
                local = until_utc + offset_from
                part = f"{key}={local.strftime(DATETIME_FORMAT)}"
        parts.append(part)
    return ";".join(parts)


@dataclass
class TimezoneTransition:
    """One STANDARD or DAYLIGHT block of a VTIMEZONE.

    Occurrences are naive local timestamps: either a recurrence rule anchored
    at ``dtstart`` or the explicit list ``dtstart`` + RDATEs.
    """

    offset_from: timedelta
    offset_to: timedelta
    dtstart: datetime
    rrule: Optional[str] = None
    rdates: list[datetime] = field(default_factory=list)

    def occurrence_set(self) -> rruleset:
        rules = rruleset()
        if self.rrule:
            parsed = rrulestr(self.rrule, dtstart=self.dtstart)
            if isinstance(parsed, rruleset):
                rules = parsed
            else:
                rules.rrule(parsed)
            for rdate in self.rdates:
                rules.rdate(rdate)
        else:
            rules.rdate(self.dtstart)
            for rdate in self.rdates:
                rules.rdate(rdate)
        return rules

    def iter_occurrences(self) -> Iterator[datetime]:
        """Yield occurrences in ascending order (possibly forever)."""
        return iter(self.occurrence_set())


class _BreakpointIndex:
    """Sorted ``(occurrence, -table_position, to_offset)`` entries for one zone.

    Built lazily: each transition's occurrence stream is consumed only up to a
    horizon, which moves forward a year at a time as later queries arrive.
    """

    def __init__(self, transitions: list[TimezoneTransition]):
        self._streams: list[Iterator[datetime]] = [t.iter_occurrences() for t in transitions]
        self._pending: list[Optional[datetime]] = [next(s, None) for s in self._streams]
        self._offsets = [t.offset_to for t in transitions]
        self._entries: list[tuple[datetime, int, timedelta]] = []
        self._horizon: Optional[datetime] = None

        # Fallback for queries before every occurrence: "from" offset of the
        # transition whose first occurrence is earliest. Strict comparison keeps
        # the first transition in table order on ties.
        self.fallback_offset: Optional[timedelta] = None
        earliest: Optional[datetime] = None
        for transition, first in zip(transitions, self._pending):
            if first is None:
                continue
            if earliest is None or first < earliest:
                earliest = first
                self.fallback_offset = transition.offset_from

    def _extend_to(self, horizon: datetime) -> None:
        added = False
        for position, stream in enumerate(self._streams):
            pending = self._pending[position]
            while pending is not None and pending < horizon:
                self._entries.append((pending, -position, self._offsets[position]))
                added = True
                pending = next(stream, None)
            self._pending[position] = pending
        if added:
            self._entries.sort(key=lambda entry: (entry[0], entry[1]))
        self._horizon = horizon

    def offset_at(self, local: datetime) -> Optional[timedelta]:
        """Return the ``to`` offset of the latest occurrence at or before ``local``."""
        if self._horizon is None or local >= self._horizon:
            horizon = datetime.max if local.year >= 9999 else datetime(local.year + 1, 1, 1)
            self._extend_to(horizon)
        pos = bisect_right(self._entries, local, key=lambda entry: entry[0])
        if pos == 0:
            return None
        return self._entries[pos - 1][2]


class Timezone:
    """A named zone built from one VTIMEZONE block."""

    def __init__(self, timezone_id: str, transitions: list[TimezoneTransition]):
        self.id = timezone_id
        self.transitions = transitions
        self._index: Optional[_BreakpointIndex] = None

    def __repr__(self) -> str:
        return f"Timezone(id={self.id!r}, transitions={len(self.transitions)})"

    def offset_for(self, local: datetime) -> timedelta:
        """Offset from UTC in force at the naive local timestamp."""
        if self._index is None:
            self._index = _BreakpointIndex(self.transitions)
        offset = self._index.offset_at(local)
        if offset is None:
            offset = self._index.fallback_offset
        if offset is None:
            raise MissingTimezoneContext(f"Timezone {self.id} has no usable transitions")
        return offset

    def local_to_utc(self, local: datetime) -> datetime:
        """Convert a naive local timestamp into an aware UTC datetime."""
        local = local.replace(tzinfo=None)
        return (local - self.offset_for(local)).replace(tzinfo=UTC)


def _prop_value(component: RawComponent, name: str) -> Optional[str]:
    prop = component.get(name)
    if prop is None or prop.value is None or not prop.value.strip():
        return None
    return prop.value.strip()


def parse_transition(component: RawComponent) -> TimezoneTransition:
    """Build a transition from a STANDARD or DAYLIGHT component.

    Raises:
        MissingRequiredProperty: TZOFFSETFROM, TZOFFSETTO or DTSTART is absent
        MalformedValue: An offset or timestamp cannot be parsed
    """
    raw_from = _prop_value(component, "TZOFFSETFROM")
    if raw_from is None:
        raise MissingRequiredProperty("TZOFFSETFROM")
    raw_to = _prop_value(component, "TZOFFSETTO")
    if raw_to is None:
        raise MissingRequiredProperty("TZOFFSETTO")
    raw_start = _prop_value(component, "DTSTART")
    if raw_start is None:
        raise MissingRequiredProperty("DTSTART")

    offset_from = parse_utc_offset(raw_from)
    offset_to = parse_utc_offset(raw_to)
    dtstart = parse_naive_datetime(raw_start)

    rdates = []
    for prop in component.get_all("RDATE"):
        if not prop.value:
            continue
        for value in prop.value.split(","):
            if value.strip():
                rdates.append(parse_naive_datetime(value))

    rrule = _prop_value(component, "RRULE")
    if rrule is not None:
        rrule = rewrite_transition_until(rrule, offset_from)
        try:
            rrulestr(rrule, dtstart=dtstart)
        except (ValueError, TypeError) as e:
            raise MalformedValue(f"Invalid transition RRULE: {rrule}", rrule) from e

    return TimezoneTransition(
        offset_from=offset_from,
        offset_to=offset_to,
        dtstart=dtstart,
        rrule=rrule,
        rdates=rdates,
    )


def build_timezone(component: RawComponent) -> Timezone:
    """Build a Timezone from a VTIMEZONE component.

    Raises:
        MissingRequiredProperty: TZID is absent, or a transition lacks a required property
        MalformedValue: A transition value cannot be parsed
    """
    tzid = _prop_value(component, "TZID")
    if tzid is None:
        raise MissingRequiredProperty("TZID")

    transitions = [
        parse_transition(sub) for sub in component.components if sub.name in TRANSITION_COMPONENTS
    ]
    return Timezone(unescape_text(tzid), transitions)


class TimezoneRegistry:
    """Per-document lookup of timezones by TZID.

    Zones defined by the document win. A TZID without a VTIMEZONE block falls
    back to the IANA database, after mapping common Windows zone names.
    """

    WINDOWS_TZ_MAP: ClassVar[dict[str, str]] = {
        "Pacific Standard Time": "America/Los_Angeles",
        "Mountain Standard Time": "America/Denver",
        "Central Standard Time": "America/Chicago",
        "Eastern Standard Time": "America/New_York",
        "GMT Standard Time": "Europe/London",
        "W. Europe Standard Time": "Europe/Berlin",
        "Romance Standard Time": "Europe/Paris",
        "Central European Standard Time": "Europe/Warsaw",
        "E. Europe Standard Time": "Europe/Chisinau",
        "Russian Standard Time": "Europe/Moscow",
        "China Standard Time": "Asia/Shanghai",
        "Tokyo Standard Time": "Asia/Tokyo",
        "India Standard Time": "Asia/Kolkata",
        "AUS Eastern Standard Time": "Australia/Sydney",
        "UTC": "UTC",
    }

    def __init__(self, timezones: Iterable[Timezone] = ()):
        self._zones: dict[str, Timezone] = {}
        self._iana: dict[str, zoneinfo.ZoneInfo] = {}
        for tz in timezones:
            self.add(tz)

    def __len__(self) -> int:
        return len(self._zones)

    def add(self, timezone: Timezone) -> None:
        if timezone.id in self._zones:
            logger.debug("Timezone %s defined more than once, keeping the last definition", timezone.id)
        self._zones[timezone.id] = timezone

    def get(self, timezone_id: str) -> Optional[Timezone]:
        return self._zones.get(timezone_id)

    def _iana_zone(self, timezone_id: str) -> zoneinfo.ZoneInfo:
        if timezone_id in self._iana:
            return self._iana[timezone_id]
        name = self.WINDOWS_TZ_MAP.get(timezone_id, timezone_id)
        try:
            zone = zoneinfo.ZoneInfo(name)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
            raise UnknownTimezone(timezone_id) from e
        self._iana[timezone_id] = zone
        return zone

    def resolve(self, timezone_id: str, local: datetime) -> datetime:
        """Convert a naive local timestamp in ``timezone_id`` to an aware UTC datetime.

        Raises:
            UnknownTimezone: TZID is neither in the document nor an IANA zone
        """
        tz = self._zones.get(timezone_id)
        if tz is not None:
            return tz.local_to_utc(local)
        zone = self._iana_zone(timezone_id)
        logger.debug("Resolved TZID %s through the IANA database", timezone_id)
        return local.replace(tzinfo=zone).astimezone(UTC)
