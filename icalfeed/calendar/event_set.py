"""Recurring series: master event, overrides and window expansion."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .exceptions import (
    EmptySeries,
    MultipleMasters,
    NoMaster,
    OverrideWithoutRecurrence,
    RecurrenceExpansionError,
)
from .models import CalendarEvent, EventOverride, PrimitiveEvent, TimeRange
from .rrule_expander import MAX_OCCURRENCES, RecurrenceSet

logger = logging.getLogger(__name__)


@dataclass
class EventSet:
    """All events sharing one UID.

    Exactly one master (no RECURRENCE-ID). Overrides exist only when the
    master recurs.
    """

    uid: str
    range: TimeRange
    summary: str
    recurrence: Optional[RecurrenceSet] = None
    overrides: list[EventOverride] = field(default_factory=list)

    @classmethod
    def build(cls, uid: str, events: list[CalendarEvent]) -> EventSet:
        """Group events of one series into an EventSet.

        Raises:
            EmptySeries: No events given
            MultipleMasters: More than one event lacks a RECURRENCE-ID
            NoMaster: Every event carries a RECURRENCE-ID
            OverrideWithoutRecurrence: Overrides exist but the master has no rule
        """
        if not events:
            raise EmptySeries(f"Series {uid} has no events")

        master: Optional[CalendarEvent] = None
        overrides: list[EventOverride] = []
        for event in events:
            if event.recurrence_id is not None:
                overrides.append(
                    EventOverride(
                        range=event.range,
                        summary=event.summary,
                        recurrence_id=event.recurrence_id,
                    )
                )
            elif master is not None:
                raise MultipleMasters(f"Series {uid} has more than one event without RECURRENCE-ID")
            else:
                master = event

        if master is None:
            raise NoMaster(f"Series {uid} has no event without RECURRENCE-ID")
        if overrides and master.recurrence is None:
            raise OverrideWithoutRecurrence(
                f"Series {uid} has RECURRENCE-ID overrides but no recurrence rule"
            )

        return cls(
            uid=uid,
            range=master.range,
            summary=master.summary,
            recurrence=master.recurrence,
            overrides=overrides,
        )

    def _initial_occurrences(
        self, window_start: datetime, window_end: datetime
    ) -> list[PrimitiveEvent]:
        if self.recurrence is None:
            if self.range.intersects(window_start, window_end):
                return [PrimitiveEvent(range=self.range, summary=self.summary)]
            return []

        starts, limited = self.recurrence.between(window_start, window_end, MAX_OCCURRENCES)
        if limited:
            logger.warning(
                "RRULE expansion for %s gave more than %d results, truncating",
                self.uid,
                MAX_OCCURRENCES,
            )
        try:
            return [
                PrimitiveEvent(range=self.range.with_start(start), summary=self.summary)
                for start in starts
            ]
        except OverflowError as e:
            raise RecurrenceExpansionError(f"Occurrence of {self.uid} ends out of range: {e}") from e

    def occurrences(self, window_start: datetime, window_end: datetime) -> list[PrimitiveEvent]:
        """Expand the series within the window and splice in overrides.

        An override replaces a generated occurrence when its RECURRENCE-ID
        equals the generated start exactly. Unmatched overrides are unused.

        Raises:
            RecurrenceExpansionError: The rule cannot be expanded over the window
        """
        result = []
        for occurrence in self._initial_occurrences(window_start, window_end):
            replacement = next(
                (o for o in self.overrides if o.recurrence_id == occurrence.range.start),
                None,
            )
            if replacement is not None:
                occurrence = PrimitiveEvent(range=replacement.range, summary=replacement.summary)
            result.append(occurrence)
        return result
