"""Unit tests for alert scheduling and the local notification center."""
from datetime import timedelta

import orjson
from conftest import NOW, make_enriched

from time_to_leave.domain import NotificationRequest
from time_to_leave.services import LocalNotificationCenter, NotificationScheduler
from time_to_leave.services.notifications import TIME_TO_LEAVE_CATEGORY, notification_body


class TestNotificationScheduler:
    """Test cases for NotificationScheduler."""

    async def test_schedule_all_builds_namespaced_requests(self, scheduler, center):
        """Each eligible event gets one request firing at its leave-by time."""
        event = make_enriched("meet", starts_in=timedelta(hours=2), drive=30, buffer=10)

        assert await scheduler.schedule_all([event]) == 1

        request = center.requests["timeToLeave_meet"]
        assert request.fire_at == event.leave_by
        assert request.title == "Time to Leave"
        assert request.category == TIME_TO_LEAVE_CATEGORY
        assert request.user_info == {
            "eventId": "meet",
            "eventTitle": event.title,
            "deepLink": "skylight://event/meet",
        }

    async def test_schedule_all_is_idempotent(self, scheduler, center):
        """Running twice over the same events leaves the same pending set."""
        events = [make_enriched("a", starts_in=timedelta(hours=2)), make_enriched("b", starts_in=timedelta(hours=3))]

        await scheduler.schedule_all(events)
        first = dict(center.requests)
        await scheduler.schedule_all(events)

        assert center.requests == first

    async def test_schedule_all_drops_stale_alerts(self, scheduler, center):
        """Alerts for events no longer present are cancelled."""
        await scheduler.schedule_all([make_enriched("gone", starts_in=timedelta(hours=2))])
        await scheduler.schedule_all([make_enriched("kept", starts_in=timedelta(hours=2))])

        assert set(center.requests) == {"timeToLeave_kept"}

    async def test_foreign_notifications_untouched(self, scheduler, center):
        """Requests outside the prefix survive a full resync and cancel."""
        await center.schedule(
            NotificationRequest(
                identifier="reminder_1",
                fire_at=NOW + timedelta(hours=1),
                title="Other",
                body="Other app",
                category="OTHER",
            )
        )

        await scheduler.schedule_all([make_enriched("a", starts_in=timedelta(hours=2))])
        await scheduler.cancel_all()

        assert set(center.requests) == {"reminder_1"}

    async def test_ineligible_events_skipped(self, scheduler, center):
        """Past leave times, missing drive times and all-day events get no alert."""
        events = [
            make_enriched("overdue", starts_in=timedelta(minutes=20)),
            make_enriched("nodrive", starts_in=timedelta(hours=2), drive=None),
            make_enriched("allday", starts_in=timedelta(days=1), all_day=True),
        ]

        assert await scheduler.schedule_all(events) == 0
        assert center.requests == {}

    async def test_single_failure_does_not_stop_others(self, scheduler, center):
        """A rejected request is skipped and the rest are still scheduled."""
        center.failing.add("timeToLeave_bad")
        events = [
            make_enriched("bad", starts_in=timedelta(hours=2)),
            make_enriched("good", starts_in=timedelta(hours=3)),
        ]

        assert await scheduler.schedule_all(events) == 1
        assert set(center.requests) == {"timeToLeave_good"}

    async def test_unexpected_failure_does_not_stop_others(self, scheduler, center):
        """Any error from the notification service is contained to its own alert."""
        center.crashing.add("timeToLeave_a")
        events = [
            make_enriched("a", starts_in=timedelta(hours=2)),
            make_enriched("b", starts_in=timedelta(hours=3)),
        ]

        assert await scheduler.schedule_all(events) == 1
        assert set(center.requests) == {"timeToLeave_b"}

    async def test_resync_skips_per_event_cancel(self, scheduler, center):
        """A full resync relies on the bulk cancel alone."""
        events = [
            make_enriched("a", starts_in=timedelta(hours=2)),
            make_enriched("b", starts_in=timedelta(hours=3)),
        ]

        await scheduler.schedule_all(events)

        assert center.cancel_calls == 0
        assert center.schedule_calls == 2

    async def test_single_schedule_replaces_pending(self, scheduler, center):
        """Scheduling one event on its own swaps out its previous alert."""
        await scheduler.schedule(make_enriched("a", starts_in=timedelta(hours=2), buffer=10))
        later = make_enriched("a", starts_in=timedelta(hours=2), buffer=20)

        assert await scheduler.schedule(later) is True

        assert center.cancel_calls == 2
        assert center.requests["timeToLeave_a"].fire_at == later.leave_by

    async def test_cancel_single_event(self, scheduler, center):
        """Cancelling by event id removes only that alert."""
        await scheduler.schedule_all(
            [make_enriched("a", starts_in=timedelta(hours=2)), make_enriched("b", starts_in=timedelta(hours=3))]
        )
        await scheduler.cancel("a")

        assert set(center.requests) == {"timeToLeave_b"}


class TestNotificationBody:
    """Test cases for the alert body text."""

    def test_body_with_drive_and_location(self):
        """The body names the event, the drive and the location."""
        event = make_enriched(title="Dentist", drive=25, location="12 Elm St")

        assert notification_body(event) == "Leave now for Dentist (25 min drive)\n12 Elm St"

    def test_long_location_is_truncated(self):
        """Locations over 40 characters are cut to 37 plus an ellipsis."""
        location = "A" * 50
        event = make_enriched(title="Lunch", drive=10, location=location)

        assert notification_body(event).split("\n")[1] == "A" * 37 + "..."


class TestLocalNotificationCenter:
    """Test cases for the file-backed notification center."""

    async def test_schedule_persists_and_delivers_due(self, tmp_path, clock):
        """Pending requests survive reopening and are delivered once due."""
        delivered = []
        path = tmp_path / "pending.json"
        scheduler = NotificationScheduler(LocalNotificationCenter(path, clock=clock), clock=clock)
        await scheduler.schedule_all(
            [
                make_enriched("soon", starts_in=timedelta(minutes=50), drive=30, buffer=10),
                make_enriched("later", starts_in=timedelta(hours=5)),
            ]
        )

        reopened = LocalNotificationCenter(path, deliver=delivered.append, clock=clock)
        assert [req.identifier for req in await reopened.pending()] == ["timeToLeave_soon", "timeToLeave_later"]

        clock.advance(minutes=15)
        due = await reopened.deliver_due()

        assert [req.identifier for req in due] == ["timeToLeave_soon"]
        assert [req.identifier for req in delivered] == ["timeToLeave_soon"]
        assert [req.identifier for req in await reopened.pending()] == ["timeToLeave_later"]

    async def test_cancel_all_with_prefix(self, tmp_path, clock):
        """Prefix cancellation reports how many requests it removed."""
        center = LocalNotificationCenter(tmp_path / "pending.json", clock=clock)
        scheduler = NotificationScheduler(center, clock=clock)
        await scheduler.schedule_all([make_enriched("a", starts_in=timedelta(hours=2))])

        assert await center.cancel_all_with_prefix("timeToLeave_") == 1
        assert await center.pending() == []

    async def test_corrupt_file_reads_as_empty(self, tmp_path, clock):
        """An unreadable pending file is treated as no pending alerts."""
        path = tmp_path / "pending.json"
        path.write_text("{not json")
        center = LocalNotificationCenter(path, clock=clock)

        assert await center.pending() == []

        scheduler = NotificationScheduler(center, clock=clock)
        assert await scheduler.schedule_all([make_enriched("a", starts_in=timedelta(hours=2))]) == 1
        assert [req.identifier for req in await center.pending()] == ["timeToLeave_a"]

    async def test_malformed_records_skipped(self, tmp_path, clock):
        """Bad entries are dropped and the valid ones kept."""
        path = tmp_path / "pending.json"
        good = NotificationRequest(
            identifier="timeToLeave_ok",
            fire_at=NOW + timedelta(hours=1),
            title="Time to Leave",
            body="Leave now for Ok",
            category=TIME_TO_LEAVE_CATEGORY,
        )
        path.write_bytes(orjson.dumps([{"title": "no identifier"}, good.to_record()]))
        center = LocalNotificationCenter(path, clock=clock)

        assert [req.identifier for req in await center.pending()] == ["timeToLeave_ok"]
