"""Reminder sweep for events starting soon.

The sweep is triggered from outside (the APScheduler job, the
``/reminders/sweep`` route or ``scripts/run_reminder_sweep.py``) with the
current time, so replays with the same ``now`` behave the same way.

Ordering: select-and-flag.
    Each due event is claimed with a conditional UPDATE that sets
    ``reminder_sent_at`` only if it is still NULL, and the claim is committed
    before any push is sent. Only the sweep whose UPDATE matched the row
    delivers reminders for that event, so two overlapping sweeps never notify
    the same recipient twice. The cost is that a delivery that fails after
    the claim is not retried by later sweeps.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlmodel import Session, select

from tribu.core.config import settings
from tribu.core.database import as_utc
from tribu.models import Event, PushSubscription
from tribu.outings.attendance import list_attendees
from tribu.push.client import PushGateway, PushPayload
from tribu.push.notify import deliver, subscriptions_for_group, subscriptions_for_names

logger = logging.getLogger(__name__)


@dataclass
class SweepStats:
    """Counters for one sweep."""

    events_notified: int = 0
    recipients_notified: int = 0
    failures: int = 0
    pruned: int = 0


def default_window() -> timedelta:
    return timedelta(hours=settings.reminder_window_hours)


def find_due_events(session: Session, now: datetime, window: timedelta) -> list[Event]:
    """Return unflagged events starting in ``(now, now + window]``, soonest first."""
    statement = (
        select(Event)
        .where(Event.date > now)
        .where(Event.date <= now + window)
        .where(Event.reminder_sent_at.is_(None))
        .order_by(Event.date)
    )
    return list(session.exec(statement).all())


def claim_event(session: Session, event: Event, now: datetime, window: timedelta) -> bool:
    """Flag ``event`` as reminded. Returns False if another sweep got there first."""
    statement = (
        update(Event)
        .where(Event.id == event.id)
        .where(Event.reminder_sent_at.is_(None))
        .where(Event.date > now)
        .where(Event.date <= now + window)
        .values(reminder_sent_at=now)
    )
    result = session.execute(statement, execution_options={"synchronize_session": False})
    session.commit()
    return result.rowcount == 1


def recipients_for(session: Session, event: Event) -> list[PushSubscription]:
    """Return attendee and group subscriptions for an event, one per endpoint."""
    candidates = subscriptions_for_names(session, list_attendees(session, event.id))
    candidates += subscriptions_for_group(session, event.group_id)

    recipients: dict[str, PushSubscription] = {}
    for subscription in candidates:
        recipients.setdefault(subscription.endpoint, subscription)
    return list(recipients.values())


def reminder_payload(event: Event) -> PushPayload:
    start = as_utc(event.date)
    return PushPayload(
        title=f"Rappel : {event.title}",
        body=f"{event.location}, {start:%d/%m/%Y %H:%M}",
        url=f"/events/{event.id}",
    )


def run_reminder_sweep(
    session: Session,
    gateway: PushGateway,
    now: datetime,
    window: timedelta | None = None,
) -> SweepStats:
    """
    Send one reminder per recipient for each event starting soon.

    Events already flagged, by this or an overlapping sweep, are skipped.
    Delivery failures are counted and never abort the sweep; endpoints that
    are gone are pruned.
    """
    now = as_utc(now)
    window = window or default_window()
    stats = SweepStats()

    for event in find_due_events(session, now, window):
        event_id = event.id
        if not claim_event(session, event, now, window):
            logger.info(f"Event {event_id} already claimed by another sweep")
            continue

        event = session.get(Event, event_id)
        delivery = deliver(session, gateway, recipients_for(session, event), reminder_payload(event))
        stats.events_notified += 1
        stats.recipients_notified += delivery.sent
        stats.failures += delivery.failed
        stats.pruned += delivery.pruned

    logger.info(f"Reminder sweep at {now.isoformat()}: {stats}")
    return stats
