"""
Temporal Grouper

Partitions the events of one identity key into periods ("sales" or merged
entities) using a calendar-month window anchored at each period's START.

Window rule (``is_within_window``):
    Let ``diff`` be the calendar-month difference between the anchor and the
    later event (``(year2 - year1) * 12 + (month2 - month1)``).

    - ``diff < N``  -> inside the window
    - ``diff > N``  -> outside
    - ``diff == N`` -> inside iff the later event's day-of-month is not past
      the anchor's day-of-month

    So 2026-01-10 and 2026-04-10 belong together; 2026-04-11 starts a new
    period. An anchor on a month-end day absorbs the shorter month's last day
    (2026-11-30 -> 2027-02-28 is inside).

Grouping (``group_events``):
    Events are sorted by timestamp, ties broken by event id so the result does
    not depend on input order. Each event joins the earliest-created period
    whose anchor still covers it (first fit); otherwise it opens a new period
    anchored at itself. Every event lands in exactly one period.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MONTHS: int = 3


# =============================================================================
# Window Arithmetic
# =============================================================================

def months_between(earlier: datetime, later: datetime) -> int:
    """Calendar-month difference, ignoring the day of month."""
    return (later.year - earlier.year) * 12 + (later.month - earlier.month)


def is_within_window(anchor: datetime, candidate: datetime, window_months: int = DEFAULT_WINDOW_MONTHS) -> bool:
    """
    Return True if ``candidate`` falls within ``window_months`` calendar
    months of ``anchor``. Symmetric in its two timestamps.
    """
    earlier, later = (anchor, candidate) if anchor <= candidate else (candidate, anchor)
    diff = months_between(earlier, later)
    if diff < window_months:
        return True
    if diff == window_months:
        return later.day <= earlier.day
    return False


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class RawEvent:
    """
    One incoming record before merging.

    Attributes:
        key: Identity key from the identity resolver.
        timestamp: Normalized event time (processing time when missing).
        event_id: Stable id used as the sort tiebreak.
        record: The record's fields, reconciled later.
    """
    key: str
    timestamp: datetime
    event_id: str
    record: Dict[str, Any] = field(default_factory=dict)

    @property
    def sort_key(self):
        return (self.timestamp, self.event_id)


@dataclass
class Period:
    """A run of events of one identity key anchored at its first event."""
    key: str
    start: datetime
    end: datetime
    events: List[RawEvent] = field(default_factory=list)

    @classmethod
    def open(cls, event: RawEvent) -> "Period":
        return cls(key=event.key, start=event.timestamp, end=event.timestamp, events=[event])

    def covers(self, event: RawEvent, window_months: int) -> bool:
        return is_within_window(self.start, event.timestamp, window_months)

    def add(self, event: RawEvent) -> None:
        self.events.append(event)
        if event.timestamp > self.end:
            self.end = event.timestamp

    @property
    def timestamps(self) -> List[datetime]:
        return [event.timestamp for event in self.events]

    @property
    def event_ids(self) -> List[str]:
        return [event.event_id for event in self.events]


# =============================================================================
# Grouping
# =============================================================================

def group_events(events: Iterable[RawEvent], window_months: int = DEFAULT_WINDOW_MONTHS) -> List[Period]:
    """
    Partition the events of ONE identity key into periods.

    Args:
        events: Events sharing a key, in any order.
        window_months: Window length in calendar months.

    Returns:
        Periods in creation order (ascending start).
    """
    periods: List[Period] = []
    for event in sorted(events, key=lambda e: e.sort_key):
        for period in periods:
            if period.covers(event, window_months):
                period.add(event)
                break
        else:
            periods.append(Period.open(event))
    return periods


def group_by_identity(
    events: Iterable[RawEvent],
    window_months: int = DEFAULT_WINDOW_MONTHS,
) -> "OrderedDict[str, List[Period]]":
    """
    Group events by key, then window each key's events.

    Keys keep first-seen order so output is stable for a given input order;
    the periods of each key do not depend on input order at all.
    """
    by_key: "OrderedDict[str, List[RawEvent]]" = OrderedDict()
    for event in events:
        by_key.setdefault(event.key, []).append(event)

    grouped: "OrderedDict[str, List[Period]]" = OrderedDict()
    for key, key_events in by_key.items():
        grouped[key] = group_events(key_events, window_months)
    return grouped


def build_events(
    records: Iterable[Mapping[str, Any]],
    key_fn: Callable[[Mapping[str, Any]], str],
    timestamp_fn: Callable[[Mapping[str, Any]], datetime],
    id_fn: Optional[Callable[[Mapping[str, Any], int], str]] = None,
) -> List[RawEvent]:
    """
    Wrap plain records as RawEvents.

    Args:
        records: Source records.
        key_fn: Identity resolver for one record.
        timestamp_fn: Returns the record's normalized timestamp.
        id_fn: Returns a stable event id; defaults to the record's ``id``
            field, falling back to its position.
    """
    events = []
    for index, record in enumerate(records):
        if id_fn is not None:
            event_id = id_fn(record, index)
        else:
            event_id = str(record.get("id") or f"#{index:06d}")
        events.append(
            RawEvent(
                key=key_fn(record),
                timestamp=timestamp_fn(record),
                event_id=event_id,
                record=dict(record),
            )
        )
    return events
