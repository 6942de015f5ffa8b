"""Tests for the reminder sweep."""

from datetime import UTC, datetime, timedelta

from sqlmodel import Session, select

from tribu.core.database import as_utc
from tribu.models import Event, Group, PushSubscription
from tribu.outings.attendance import subscribe
from tribu.outings.reminders import claim_event, find_due_events, reminder_payload, run_reminder_sweep
from tribu.push.client import DeliveryResult

NOW = datetime(2030, 6, 1, 8, 0, tzinfo=UTC)
WINDOW = timedelta(hours=24)


def remind(session, gateway, now=NOW):
    return run_reminder_sweep(session, gateway, now, WINDOW)


class TestFindDueEvents:
    """Tests for candidate selection."""

    def test_window_bounds(self, session: Session, make_event):
        """Test that only unflagged events in (now, now + window] are due."""
        started = make_event(title="Started", date=NOW)
        soon = make_event(title="Soon", date=NOW + timedelta(hours=2))
        edge = make_event(title="Edge", date=NOW + WINDOW)
        make_event(title="Later", date=NOW + WINDOW + timedelta(minutes=1))
        make_event(title="Flagged", date=NOW + timedelta(hours=3), reminder_sent_at=NOW - timedelta(hours=1))

        due = find_due_events(session, NOW, WINDOW)

        assert [e.title for e in due] == ["Soon", "Edge"]
        assert started.id not in {e.id for e in due}
        assert {soon.id, edge.id} == {e.id for e in due}


class TestRunReminderSweep:
    """Tests for run_reminder_sweep."""

    def test_reminds_attendees_once(self, session: Session, gateway, make_event, add_subscription):
        """Test that two sweeps with the same now send one reminder per recipient."""
        event = make_event(date=NOW + timedelta(hours=5))
        subscribe(session, event.id, "Bob", now=NOW)
        subscribe(session, event.id, "Carol", now=NOW)
        add_subscription("https://push.example/bob", "bob")
        add_subscription("https://push.example/carol", "Carol")
        add_subscription("https://push.example/dave", "Dave")

        first = remind(session, gateway)
        second = remind(session, gateway)

        assert sorted(gateway.endpoints) == ["https://push.example/bob", "https://push.example/carol"]
        assert (first.events_notified, first.recipients_notified) == (1, 2)
        assert (second.events_notified, second.recipients_notified) == (0, 0)
        session.refresh(event)
        assert as_utc(event.reminder_sent_at) == NOW

    def test_group_followers_deduplicated(
        self, session: Session, gateway, sample_group: Group, make_event, add_subscription
    ):
        """Test that an attendee who also follows the group gets one reminder."""
        event = make_event(date=NOW + timedelta(hours=5), group_id=sample_group.id)
        subscribe(session, event.id, "Bob", now=NOW)
        add_subscription("https://push.example/bob", "Bob", [sample_group.id])
        add_subscription("https://push.example/eve", "Eve", [sample_group.id])

        stats = remind(session, gateway)

        assert sorted(gateway.endpoints) == ["https://push.example/bob", "https://push.example/eve"]
        assert stats.recipients_notified == 2

    def test_payload(self, make_event):
        """Test reminder content."""
        event = make_event(title="Cinéma", location="Le Rex", date=datetime(2030, 6, 1, 14, 30, tzinfo=UTC))

        payload = reminder_payload(event)

        assert payload.title == "Rappel : Cinéma"
        assert payload.body == "Le Rex, 01/06/2030 14:30"
        assert payload.url == f"/events/{event.id}"

    def test_permanent_failure_prunes(self, session: Session, gateway, make_event, add_subscription):
        """Test that gone endpoints are deleted and the sweep goes on."""
        event = make_event(date=NOW + timedelta(hours=5))
        subscribe(session, event.id, "Bob", now=NOW)
        subscribe(session, event.id, "Carol", now=NOW)
        add_subscription("https://push.example/bob", "Bob")
        add_subscription("https://push.example/carol", "Carol")
        gateway.results["https://push.example/bob"] = DeliveryResult.PERMANENT_FAILURE

        stats = remind(session, gateway)

        assert (stats.recipients_notified, stats.pruned, stats.failures) == (1, 1, 0)
        endpoints = session.exec(select(PushSubscription.endpoint)).all()
        assert endpoints == ["https://push.example/carol"]

    def test_transient_failure_continues(self, session: Session, gateway, make_event, add_subscription):
        """Test that a transient failure is counted without stopping other events."""
        first = make_event(title="Premier", date=NOW + timedelta(hours=2))
        second = make_event(title="Second", date=NOW + timedelta(hours=4))
        subscribe(session, first.id, "Bob", now=NOW)
        subscribe(session, second.id, "Carol", now=NOW)
        add_subscription("https://push.example/bob", "Bob")
        add_subscription("https://push.example/carol", "Carol")
        gateway.results["https://push.example/bob"] = DeliveryResult.TRANSIENT_FAILURE

        stats = remind(session, gateway)

        assert (stats.events_notified, stats.recipients_notified, stats.failures) == (2, 1, 1)
        assert session.exec(select(PushSubscription)).all() != []

    def test_gateway_exception_is_transient(self, session: Session, make_event, add_subscription):
        """Test that a gateway raising does not abort the sweep."""

        class BrokenGateway:
            def send(self, subscription, payload):
                raise ConnectionError("push service unreachable")

        event = make_event(date=NOW + timedelta(hours=5))
        subscribe(session, event.id, "Bob", now=NOW)
        add_subscription("https://push.example/bob", "Bob")

        stats = remind(session, BrokenGateway())

        assert (stats.events_notified, stats.failures) == (1, 1)

    def test_event_without_recipients_is_flagged(self, session: Session, gateway, make_event):
        """Test that events nobody follows are flagged without sending."""
        event = make_event(date=NOW + timedelta(hours=5))

        stats = remind(session, gateway)

        assert stats.events_notified == 1
        assert gateway.sent == []
        session.refresh(event)
        assert event.reminder_sent_at is not None

    def test_overlapping_claim(self, session: Session, gateway, make_event, add_subscription):
        """Test that an event claimed by another sweep is skipped."""
        event = make_event(date=NOW + timedelta(hours=5))
        subscribe(session, event.id, "Bob", now=NOW)
        add_subscription("https://push.example/bob", "Bob")

        assert claim_event(session, event, NOW, WINDOW) is True
        assert claim_event(session, event, NOW, WINDOW) is False

        stats = remind(session, gateway)
        assert stats.events_notified == 0
        assert gateway.sent == []

    def test_moved_event_reminded_again(self, session: Session, gateway, make_event, add_subscription):
        """Test that moving a reminded event makes it due again."""
        from tribu.outings.attendance import update_event

        event = make_event(date=NOW + timedelta(hours=5))
        subscribe(session, event.id, "Bob", now=NOW)
        add_subscription("https://push.example/bob", "Bob")
        remind(session, gateway)

        update_event(session, event.id, {"date": NOW + timedelta(hours=20)}, "Alice")
        remind(session, gateway)

        assert gateway.endpoints == ["https://push.example/bob", "https://push.example/bob"]

    def test_leaves_other_events_alone(self, session: Session, gateway, make_event):
        """Test that events outside the window keep their flag empty."""
        later = make_event(date=NOW + timedelta(days=3))

        remind(session, gateway)

        stored = session.get(Event, later.id)
        assert stored.reminder_sent_at is None


class TestReminderJob:
    """Tests for the background job wrapper."""

    def test_skipped_without_push(self, session: Session, engine, make_event, monkeypatch):
        """Test that the job flags nothing when push is not configured."""
        from tribu.core import scheduler

        monkeypatch.setattr(scheduler, "engine", engine)
        monkeypatch.setattr(scheduler, "get_push_gateway", lambda: None)
        event = make_event(date=datetime.now(UTC) + timedelta(hours=2))

        scheduler.reminder_job()

        session.refresh(event)
        assert event.reminder_sent_at is None

    def test_runs_sweep(self, session: Session, engine, gateway, make_event, add_subscription, monkeypatch):
        """Test that the job sweeps with the current time."""
        from tribu.core import scheduler

        monkeypatch.setattr(scheduler, "engine", engine)
        monkeypatch.setattr(scheduler, "get_push_gateway", lambda: gateway)
        event = make_event(date=datetime.now(UTC) + timedelta(hours=2))
        subscribe(session, event.id, "Bob")
        add_subscription("https://push.example/bob", "Bob")

        scheduler.reminder_job()

        assert gateway.endpoints == ["https://push.example/bob"]
        session.refresh(event)
        assert event.reminder_sent_at is not None
