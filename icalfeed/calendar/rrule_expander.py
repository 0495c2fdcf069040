"""RRULE parsing, validation and window expansion for icalfeed events."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Optional

from dateutil.rrule import rrulebase, rrulestr

from .datetime_utils import parse_date, parse_naive_datetime
from .exceptions import (
    MalformedValue,
    RecurrenceExpansionError,
    RecurrenceRuleParseError,
    RecurrenceRuleValidationError,
)

logger = logging.getLogger(__name__)

MAX_OCCURRENCES = 100

VALID_FREQUENCIES = frozenset(
    {"SECONDLY", "MINUTELY", "HOURLY", "DAILY", "WEEKLY", "MONTHLY", "YEARLY"}
)
_SINGLE_INTEGER_PARTS = frozenset({"COUNT", "INTERVAL"})
_INTEGER_LIST_PARTS = frozenset({"BYSETPOS", "BYMONTH", "BYMONTHDAY", "BYYEARDAY", "BYWEEKNO"})


@dataclass
class RecurrenceRule:
    """A parsed but not yet validated RRULE value.

    Keys are kept upper-cased in their original order so the rule can be
    written back out unchanged apart from deliberate rewrites.
    """

    parts: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, rrule_string: str) -> RecurrenceRule:
        """Parse an RRULE string into components.

        Args:
            rrule_string: RRULE string (e.g. "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO")

        Returns:
            RecurrenceRule with upper-cased keys

        Raises:
            RecurrenceRuleParseError: If RRULE string is invalid
        """
        if not rrule_string or not rrule_string.strip():
            raise RecurrenceRuleParseError("Empty RRULE string")

        text = rrule_string.strip()
        if text.upper().startswith("RRULE:"):
            text = text[len("RRULE:"):]

        parts: dict[str, str] = {}
        for part in text.split(";"):
            if not part.strip():
                continue
            if "=" not in part:
                raise RecurrenceRuleParseError(f"Invalid RRULE part {part!r} in {rrule_string}")
            key, value = part.split("=", 1)
            key = key.strip().upper()
            value = value.strip()
            if not key or not value:
                raise RecurrenceRuleParseError(f"Invalid RRULE part {part!r} in {rrule_string}")
            if key in parts:
                raise RecurrenceRuleParseError(f"RRULE part {key} given more than once")
            if key in _SINGLE_INTEGER_PARTS or key in _INTEGER_LIST_PARTS:
                items = [value] if key in _SINGLE_INTEGER_PARTS else value.split(",")
                for item in items:
                    try:
                        int(item)
                    except ValueError as e:
                        raise RecurrenceRuleParseError(f"RRULE {key} must be an integer: {value}") from e
            parts[key] = value

        freq = parts.get("FREQ")
        if not freq:
            raise RecurrenceRuleParseError("RRULE missing required FREQ parameter")
        if freq.upper() not in VALID_FREQUENCIES:
            raise RecurrenceRuleParseError(f"Unsupported RRULE frequency: {freq}")
        parts["FREQ"] = freq.upper()

        return cls(parts)

    def __str__(self) -> str:
        return ";".join(f"{key}={value}" for key, value in self.parts.items())

    @property
    def freq(self) -> str:
        return self.parts["FREQ"]

    @property
    def count(self) -> Optional[int]:
        value = self.parts.get("COUNT")
        return int(value) if value is not None else None

    @property
    def interval(self) -> int:
        value = self.parts.get("INTERVAL")
        return int(value) if value is not None else 1

    @property
    def until(self) -> Optional[str]:
        return self.parts.get("UNTIL")

    def with_until(self, until: str) -> RecurrenceRule:
        parts = dict(self.parts)
        parts["UNTIL"] = until
        return RecurrenceRule(parts)

    def pin_until_to_utc_midnight(self) -> RecurrenceRule:
        """Rewrite ``UNTIL`` to ``T000000Z`` of its calendar date.

        All-day events start at UTC midnight, so a date-only or local ``UNTIL``
        is pinned to the same frame.
        """
        if self.until is None or len(self.until) < 8:
            return self
        return self.with_until(f"{self.until[:8]}T000000Z")

    def _until_instant(self) -> Optional[datetime]:
        until = self.until
        if until is None:
            return None
        try:
            if until.upper().endswith("Z"):
                return parse_naive_datetime(until[:-1]).replace(tzinfo=UTC)
            if len(until) == 8:
                return datetime.combine(parse_date(until), datetime.min.time())
            return parse_naive_datetime(until)
        except MalformedValue as e:
            raise RecurrenceRuleValidationError(f"Invalid RRULE UNTIL: {until}") from e

    def validate(self, dtstart: datetime) -> RecurrenceSet:
        """Check the rule against the event start and build its occurrence set.

        Args:
            dtstart: Aware UTC start of the series

        Raises:
            RecurrenceRuleValidationError: COUNT or INTERVAL is not a positive
                integer, COUNT and UNTIL are both set, UNTIL precedes the start,
                or dateutil rejects the rule (for example a floating UNTIL on a
                timed event)
        """
        try:
            count, interval = self.count, self.interval
        except ValueError as e:
            raise RecurrenceRuleValidationError(f"Invalid RRULE {self}: {e}") from e
        if count is not None and count <= 0:
            raise RecurrenceRuleValidationError(f"RRULE COUNT must be positive: {count}")
        if interval <= 0:
            raise RecurrenceRuleValidationError(f"RRULE INTERVAL must be positive: {interval}")
        if count is not None and self.until is not None:
            raise RecurrenceRuleValidationError("RRULE must not contain both COUNT and UNTIL")

        until = self._until_instant()
        if until is not None and until.tzinfo is not None and until < dtstart:
            raise RecurrenceRuleValidationError(
                f"RRULE UNTIL {self.until} is before the start {dtstart.isoformat()}"
            )

        try:
            rules = rrulestr(str(self), dtstart=dtstart)
        except (ValueError, TypeError) as e:
            raise RecurrenceRuleValidationError(f"Invalid RRULE {self}: {e}") from e

        return RecurrenceSet(self, dtstart, rules)


class RecurrenceSet:
    """A validated rule anchored at its series start."""

    def __init__(self, rule: RecurrenceRule, dtstart: datetime, rules: rrulebase):
        self.rule = rule
        self.dtstart = dtstart
        self._rules = rules

    def __repr__(self) -> str:
        return f"RecurrenceSet(rule={str(self.rule)!r}, dtstart={self.dtstart.isoformat()})"

    def iter_after(self, after: datetime) -> Iterator[datetime]:
        """Occurrences strictly after ``after`` in ascending order."""
        return self._rules.xafter(after, inc=False)

    def between(
        self, after: datetime, before: datetime, limit: int = MAX_OCCURRENCES
    ) -> tuple[list[datetime], bool]:
        """Occurrences strictly between ``after`` and ``before``, at most ``limit`` of them.

        Returns:
            (occurrences, limited) where ``limited`` is True when more
            occurrences existed in the window than were returned

        Raises:
            RecurrenceExpansionError: dateutil fails while generating dates,
                for example when a series runs past the last representable year
        """
        occurrences: list[datetime] = []
        try:
            for occurrence in self.iter_after(after):
                if occurrence >= before:
                    return occurrences, False
                if len(occurrences) >= limit:
                    return occurrences, True
                occurrences.append(occurrence)
        except (ValueError, OverflowError) as e:
            raise RecurrenceExpansionError(f"Cannot expand RRULE {self.rule}: {e}") from e
        return occurrences, False
