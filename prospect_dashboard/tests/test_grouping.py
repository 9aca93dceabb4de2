"""
Test Module for the Identity Resolver and the Temporal Grouper.

Covers:
- Identifier precedence (client > maid > conversation id) and the
  deterministic fallback key for records without identifiers
- Composite sale keys with placeholders
- The calendar-month window rule, including its boundary day and month-end
  anchors
- Grouping: every event lands in exactly one period, periods are anchored at
  their first event, and the result does not depend on input order
"""

import random
from datetime import datetime, timezone

import pytest

from prospect_dashboard.services.grouping import (
    RawEvent,
    group_by_identity,
    group_events,
    is_within_window,
    months_between,
)
from prospect_dashboard.services.identity import (
    SALE_IDENTITY,
    resolve_identity,
    synthesize_key,
)


def ts(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


def event(key: str, when: str, event_id: str) -> RawEvent:
    return RawEvent(key=key, timestamp=ts(when), event_id=event_id, record={"id": event_id})


# =============================================================================
# IDENTITY
# =============================================================================

class TestConversationIdentity:
    """Tests for the precedence identity of conversations."""

    def test_client_id_wins(self):
        key = resolve_identity({"clientId": "C1", "maidId": "M1", "conversationId": "x"})
        assert key == "client:C1"

    def test_maid_id_when_no_client(self):
        key = resolve_identity({"clientId": "  ", "maidId": "M1", "conversationId": "x"})
        assert key == "maid:M1", (
            "Blank client ids must fall through to the maid tier"
        )

    def test_conversation_id_used_raw(self):
        assert resolve_identity({"conversationId": "conv-9"}) == "conv-9"

    def test_fallback_key_is_deterministic(self):
        record = {"messages": "hello", "chatStartDateTime": "2026-01-10T08:00:00Z"}
        first = resolve_identity(dict(record))
        second = resolve_identity(dict(reversed(list(record.items()))))
        assert first == second, (
            "The synthesized key must not depend on field order"
        )
        assert first.startswith("anon:")
        assert first == synthesize_key(record)

    def test_different_tiers_do_not_merge(self):
        """A client-only row and a maid-only row of one household stay apart."""
        assert resolve_identity({"clientId": "C1"}) != resolve_identity({"maidId": "M1"})


class TestSaleIdentity:

    def test_all_parts_present(self):
        key = SALE_IDENTITY.resolve({"contractId": "K1", "clientId": "C1", "housemaidId": "H1"})
        assert key == "K1_C1_H1"

    def test_placeholders_for_empty_parts(self):
        key = SALE_IDENTITY.resolve({"contractId": "K1", "housemaidId": "H1"})
        assert key == "K1_no-client_H1"

    def test_qualifier_prefix(self):
        key = SALE_IDENTITY.resolve({"contractId": "K1"}, qualifier="oec")
        assert key == "oec_K1_no-client_no-housemaid"


# =============================================================================
# WINDOW RULE
# =============================================================================

class TestWindowRule:
    """Tests for the 3-calendar-month window anchored at a period start."""

    def test_months_between_ignores_days(self):
        assert months_between(ts("2026-01-31"), ts("2026-02-01")) == 1
        assert months_between(ts("2025-11-15"), ts("2026-02-15")) == 3

    @pytest.mark.parametrize(
        "anchor,candidate,expected",
        [
            ("2026-01-10", "2026-01-10", True),
            ("2026-01-10", "2026-03-31", True),
            ("2026-01-10", "2026-04-10", True),
            ("2026-01-10", "2026-04-11", False),
            ("2026-01-10", "2026-05-01", False),
            ("2026-11-30", "2027-02-28", True),
            ("2026-01-31", "2026-04-30", True),
        ],
    )
    def test_boundary(self, anchor, candidate, expected):
        assert is_within_window(ts(anchor), ts(candidate)) is expected, (
            f"{candidate} relative to anchor {anchor} should be "
            f"{'inside' if expected else 'outside'} the window"
        )

    def test_symmetric(self):
        a, b = ts("2026-01-10"), ts("2026-04-11")
        assert is_within_window(a, b) == is_within_window(b, a)

    def test_window_length_is_configurable(self):
        assert is_within_window(ts("2026-01-10"), ts("2026-02-10"), window_months=1)
        assert not is_within_window(ts("2026-01-10"), ts("2026-02-11"), window_months=1)


# =============================================================================
# GROUPING
# =============================================================================

class TestGroupEvents:
    """Tests for partitioning one key's events into periods."""

    def test_boundary_day_opens_new_period(self):
        periods = group_events([
            event("k", "2026-01-10", "a"),
            event("k", "2026-04-10", "b"),
            event("k", "2026-04-11", "c"),
        ])
        assert [p.event_ids for p in periods] == [["a", "b"], ["c"]]
        assert periods[1].start == ts("2026-04-11")

    def test_anchor_is_period_start_not_last_event(self):
        """A chain of events each within a month of the previous still splits."""
        periods = group_events([
            event("k", "2026-01-01", "a"),
            event("k", "2026-02-15", "b"),
            event("k", "2026-03-30", "c"),
            event("k", "2026-05-10", "d"),
        ])
        assert len(periods) == 2
        assert periods[0].event_ids == ["a", "b", "c"]
        assert periods[1].event_ids == ["d"]

    def test_every_event_in_exactly_one_period(self):
        events = [event("k", f"2026-{month:02d}-05", f"e{month}") for month in range(1, 13)]
        periods = group_events(events)
        ids = [event_id for period in periods for event_id in period.event_ids]
        assert sorted(ids) == sorted(e.event_id for e in events)
        assert len(ids) == len(set(ids))

    def test_order_independent(self):
        events = [
            event("k", "2026-01-10", "a"),
            event("k", "2026-01-10", "b"),
            event("k", "2026-03-01", "c"),
            event("k", "2026-04-11", "d"),
            event("k", "2026-09-01", "e"),
        ]
        expected = [p.event_ids for p in group_events(events)]
        rng = random.Random(7)
        for _ in range(10):
            shuffled = events[:]
            rng.shuffle(shuffled)
            assert [p.event_ids for p in group_events(shuffled)] == expected, (
                "Grouping must not depend on input order"
            )

    def test_period_span(self):
        (period,) = group_events([event("k", "2026-02-20", "b"), event("k", "2026-01-10", "a")])
        assert period.start == ts("2026-01-10")
        assert period.end == ts("2026-02-20")

    def test_empty(self):
        assert group_events([]) == []


class TestGroupByIdentity:

    def test_keys_are_grouped_independently(self):
        grouped = group_by_identity([
            event("client:1", "2026-01-10", "a"),
            event("client:2", "2026-01-11", "b"),
            event("client:1", "2026-06-01", "c"),
        ])
        assert list(grouped.keys()) == ["client:1", "client:2"]
        assert len(grouped["client:1"]) == 2
        assert len(grouped["client:2"]) == 1
