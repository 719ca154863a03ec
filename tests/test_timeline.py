"""Unit tests for display timeline generation."""
from datetime import timedelta

import pytest
from conftest import NOW, make_enriched

from time_to_leave.domain import TimelineState
from time_to_leave.services import TimelineGenerator
from time_to_leave.services.timeline import event_transitions


@pytest.fixture
def generator(store, timeline_settings, clock):
    return TimelineGenerator(store, timeline_settings, clock=clock)


def _states(timeline):
    return [(entry.timestamp, entry.state, entry.event_id) for entry in timeline.entries]


class TestTimelineGenerator:
    """Test cases for TimelineGenerator."""

    def test_located_event_yields_three_entries(self, generator):
        """Upcoming, leave-now and started entries appear in order."""
        event = make_enriched("meet", starts_in=timedelta(hours=2), drive=30, buffer=10)

        timeline = generator.build([event], NOW)

        assert _states(timeline) == [
            (NOW, TimelineState.UPCOMING, "meet"),
            (event.leave_by, TimelineState.LEAVE_NOW, "meet"),
            (event.starts_at, TimelineState.EVENT_STARTED, "meet"),
        ]
        assert event.leave_by < event.starts_at
        assert timeline.refresh_at == event.starts_at + timedelta(seconds=60)

    def test_unlocated_event_has_no_leave_now(self, generator):
        """Without a drive time the event goes straight from upcoming to started."""
        event = make_enriched("call", starts_in=timedelta(hours=1), drive=None, location=None)

        timeline = generator.build([event], NOW)

        assert _states(timeline) == [
            (NOW, TimelineState.UPCOMING, "call"),
            (event.starts_at, TimelineState.EVENT_STARTED, "call"),
        ]

    def test_passed_leave_time_starts_in_leave_now(self, generator):
        """An event whose leave-by is behind us opens in leave-now."""
        event = make_enriched("late", starts_in=timedelta(minutes=20), drive=30, buffer=10)

        timeline = generator.build([event], NOW)

        assert _states(timeline) == [
            (NOW, TimelineState.LEAVE_NOW, "late"),
            (event.starts_at, TimelineState.EVENT_STARTED, "late"),
        ]

    def test_no_events_yields_no_upcoming(self, generator):
        """An empty list produces a single no-upcoming entry."""
        timeline = generator.build([], NOW)

        assert _states(timeline) == [(NOW, TimelineState.NO_UPCOMING, None)]
        assert timeline.refresh_at == NOW + timedelta(seconds=60)

    def test_started_and_all_day_events_ignored(self, generator):
        """Only future timed events contribute entries."""
        started = make_enriched("started", starts_in=timedelta(minutes=-10))
        all_day = make_enriched("allday", starts_in=timedelta(hours=3), all_day=True)

        timeline = generator.build([started, all_day], NOW)

        assert _states(timeline) == [(NOW, TimelineState.NO_UPCOMING, None)]

    def test_limited_to_first_five_events(self, generator):
        """At most five events contribute, chosen by start time."""
        events = [make_enriched(f"e{i}", starts_in=timedelta(hours=i + 1), drive=None) for i in range(7)]

        timeline = generator.build(list(reversed(events)), NOW)

        assert {entry.event_id for entry in timeline.entries} == {f"e{i}" for i in range(5)}

    def test_entries_sorted_and_soonest_wins_ties(self, generator):
        """Entries are in time order and the first entry at now is the soonest event."""
        first = make_enriched("first", starts_in=timedelta(hours=1))
        second = make_enriched("second", starts_in=timedelta(hours=4))

        timeline = generator.build([second, first], NOW)
        timestamps = [entry.timestamp for entry in timeline.entries]

        assert timestamps == sorted(timestamps)
        assert timeline.entry_at(NOW).event_id == "first"

    def test_entry_at_tracks_state_changes(self, generator):
        """Looking up a moment returns the latest entry at or before it."""
        event = make_enriched("meet", starts_in=timedelta(hours=2), drive=30, buffer=10)
        timeline = generator.build([event], NOW)

        assert timeline.entry_at(NOW - timedelta(minutes=1)) is None
        assert timeline.entry_at(NOW + timedelta(minutes=30)).state is TimelineState.UPCOMING
        assert timeline.entry_at(event.leave_by).state is TimelineState.LEAVE_NOW
        assert timeline.entry_at(event.starts_at + timedelta(minutes=5)).state is TimelineState.EVENT_STARTED
        assert timeline.next_wake(NOW) == event.leave_by

    def test_missing_snapshot_yields_no_data(self, generator):
        """Without a saved snapshot the surface shows no data for an hour."""
        timeline = generator.generate(NOW)

        assert _states(timeline) == [(NOW, TimelineState.NO_DATA, None)]
        assert timeline.refresh_at == NOW + timedelta(hours=1)

    def test_stale_snapshot_yields_no_data(self, generator, store):
        """A snapshot older than a day is treated as missing."""
        store.write([make_enriched(starts_in=timedelta(days=2))])
        later = NOW + timedelta(hours=25)

        assert generator.generate(later).entries[0].state is TimelineState.NO_DATA

    def test_generate_reads_saved_snapshot(self, generator, store):
        """A fresh snapshot is turned into a full timeline."""
        store.write([make_enriched("meet", starts_in=timedelta(hours=2))])

        timeline = generator.generate(NOW)

        assert [entry.state for entry in timeline.entries] == [
            TimelineState.UPCOMING,
            TimelineState.LEAVE_NOW,
            TimelineState.EVENT_STARTED,
        ]


class TestEventTransitions:
    """Test cases for per-event transitions."""

    def test_started_event_holds_until_end(self):
        """A started event stays in the started state until it ends."""
        event = make_enriched("ongoing", starts_in=timedelta(minutes=-15))

        entries = event_transitions(event, NOW)

        assert [(entry.timestamp, entry.state) for entry in entries] == [
            (NOW, TimelineState.EVENT_STARTED),
            (event.ends_at, TimelineState.EVENT_STARTED),
        ]

    def test_current_state_placeholder(self, generator):
        """The single-entry view reflects the next event's situation."""
        late = make_enriched("late", starts_in=timedelta(minutes=20), drive=30, buffer=10)

        assert generator.current_state([late], NOW).state is TimelineState.LEAVE_NOW
        assert generator.current_state([], NOW).state is TimelineState.NO_UPCOMING
