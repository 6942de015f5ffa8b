"""Attendance, comments and organizer-gated edits for events.

Every mutation of an event's attendee list goes through this module, which
keeps the capacity invariant: ``attendee_count`` never exceeds
``max_participants`` after a commit, even when several requests race for
the last spot.

Concurrency model:
    A subscribe opens its write transaction with a single conditional
    UPDATE that bumps ``attendee_count`` only if the event exists, has not
    started and still has room. The database applies it atomically, so two
    racing requests cannot both see the last free spot. The attendee row is
    inserted in the same transaction; the ``(event_id, name_key)`` unique
    constraint rejects duplicates and the rollback undoes the bump.

    Edits follow the same pattern: the organizer check and the "capacity not
    below current attendees" check are part of the UPDATE's WHERE clause,
    and only whitelisted content columns are written. Attendees and comments
    are never touched by an edit.

Identity:
    Organizer checks compare the trimmed requesting name to ``organizer``
    exactly (case-sensitive). Attendee names are compared case-insensitively.
"""
import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from tribu.core.database import as_utc
from tribu.models import Attendee, Comment, Event, Group
from tribu.models.attendee import name_key
from tribu.outings.errors import (
    AlreadySubscribed,
    EventFull,
    EventPast,
    Forbidden,
    NotFound,
    ValidationError,
)
from tribu.outings.recurrence import validate_event_fields
from tribu.schemas import EventFields

logger = logging.getLogger(__name__)

NO_SYNC = {"synchronize_session": False}

# Columns an edit may change but never clear.
REQUIRED_FIELDS = ("title", "description", "category", "location", "event_link", "date", "price", "organizer")


def get_event(session: Session, event_id: UUID) -> Event:
    """Return an event by id.

    Raises:
        NotFound: If the event does not exist.
    """
    event = session.get(Event, event_id)
    if event is None:
        raise NotFound("Event", event_id)
    return event


def list_events(session: Session, group_ids: list[UUID] | None = None) -> list[Event]:
    """Return ungrouped events plus events of ``group_ids``, by start date."""
    visible = Event.group_id.is_(None)
    if group_ids:
        visible = or_(visible, Event.group_id.in_(group_ids))
    statement = select(Event).where(visible).order_by(Event.date)
    return list(session.exec(statement).all())


def list_attendees(session: Session, event_id: UUID) -> list[str]:
    """Return attendee names in join order."""
    statement = (
        select(Attendee.name).where(Attendee.event_id == event_id).order_by(Attendee.id)
    )
    return list(session.exec(statement).all())


def list_comments(session: Session, event_id: UUID) -> list[Comment]:
    """Return comments of an event, oldest first."""
    get_event(session, event_id)
    statement = (
        select(Comment).where(Comment.event_id == event_id).order_by(Comment.created_at)
    )
    return list(session.exec(statement).all())


def _has_attendee(session: Session, event_id: UUID, key: str) -> bool:
    statement = select(Attendee.id).where(
        Attendee.event_id == event_id, Attendee.name_key == key
    )
    return session.exec(statement).first() is not None


def subscribe(
    session: Session, event_id: UUID, name: str, now: datetime | None = None
) -> list[str]:
    """
    Add ``name`` to an event's attendees.

    The duplicate check takes precedence over the time and capacity checks,
    so subscribing the same name twice always yields one success and one
    AlreadySubscribed.

    Returns:
        Attendee names in join order, including the new one.

    Raises:
        ValidationError: If the name is blank.
        NotFound: If the event does not exist.
        AlreadySubscribed: If the name (any case) already joined.
        EventPast: If the event has started.
        EventFull: If the event has reached ``max_participants``.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name", "name is required")
    key = name_key(name)
    now = as_utc(now or datetime.now(UTC))

    claim = (
        update(Event)
        .where(Event.id == event_id)
        .where(Event.date > now)
        .where(
            or_(
                Event.max_participants.is_(None),
                Event.attendee_count < Event.max_participants,
            )
        )
        .values(attendee_count=Event.attendee_count + 1)
    )
    result = session.execute(claim, execution_options=NO_SYNC)

    if result.rowcount == 1:
        session.add(Attendee(event_id=event_id, name=name, name_key=key))
        try:
            session.flush()
        except IntegrityError:
            session.rollback()
            raise AlreadySubscribed(name)
        session.commit()
        logger.info(f"{name} joined event {event_id}")
        return list_attendees(session, event_id)

    session.rollback()
    event = session.get(Event, event_id)
    if event is None:
        raise NotFound("Event", event_id)
    if _has_attendee(session, event_id, key):
        raise AlreadySubscribed(name)
    if as_utc(event.date) <= now:
        raise EventPast()
    raise EventFull()


def unsubscribe(session: Session, event_id: UUID, name: str) -> list[str]:
    """
    Remove ``name`` from an event's attendees.

    Leaving is not capacity-constrained and is a no-op when the name is not
    on the list.

    Returns:
        Attendee names in join order.

    Raises:
        NotFound: If the event does not exist.
    """
    key = name_key(name or "")
    removal = delete(Attendee).where(
        Attendee.event_id == event_id, Attendee.name_key == key
    )
    result = session.execute(removal, execution_options=NO_SYNC)

    if result.rowcount:
        release = (
            update(Event)
            .where(Event.id == event_id)
            .values(attendee_count=Event.attendee_count - result.rowcount)
        )
        session.execute(release, execution_options=NO_SYNC)
        session.commit()
        logger.info(f"{(name or '').strip()} left event {event_id}")
    else:
        session.rollback()
        get_event(session, event_id)

    return list_attendees(session, event_id)


def add_comment(session: Session, event_id: UUID, author: str, content: str) -> Comment:
    """
    Append a comment to an event.

    Raises:
        ValidationError: If author or content is blank after trimming.
        NotFound: If the event does not exist.
    """
    author = (author or "").strip()
    content = (content or "").strip()
    if not author:
        raise ValidationError("author", "author is required")
    if not content:
        raise ValidationError("content", "content is required")
    get_event(session, event_id)

    comment = Comment(event_id=event_id, author=author, content=content)
    session.add(comment)
    session.commit()
    session.refresh(comment)
    return comment


def _require_organizer(event: Event, requesting_name: str | None) -> None:
    if (requesting_name or "").strip() != event.organizer:
        raise Forbidden()


def update_event(
    session: Session, event_id: UUID, changes: dict, requesting_name: str | None
) -> Event:
    """
    Apply content changes to a single event.

    Only the keys in ``changes`` are written. The series id, attendees,
    comments and attendee count are never modified. An empty ``image``
    keeps the stored one. Moving the start date clears the reminder flag so
    the new date gets its own reminder.

    Raises:
        NotFound: If the event (or a newly referenced group) does not exist.
        Forbidden: If ``requesting_name`` is not the organizer.
        ValidationError: If the merged content is invalid, if a required
            field is set to None, or if ``max_participants`` would drop
            below the current attendee count.
    """
    event = get_event(session, event_id)
    _require_organizer(event, requesting_name)
    organizer = event.organizer

    changes = dict(changes)
    for field in REQUIRED_FIELDS:
        if field in changes and changes[field] is None:
            raise ValidationError(field, f"{field} cannot be empty")
    if not changes.get("image"):
        changes.pop("image", None)
    for field in ("date", "end_date"):
        if changes.get(field) is not None:
            changes[field] = as_utc(changes[field])
    for field in ("title", "organizer"):
        if isinstance(changes.get(field), str):
            changes[field] = changes[field].strip()

    current = EventFields.model_validate(event.model_dump(include=set(EventFields.model_fields)))
    merged = current.model_copy(update=changes)
    validate_event_fields(merged)

    if changes.get("group_id") is not None and session.get(Group, changes["group_id"]) is None:
        raise NotFound("Group", changes["group_id"])

    if "date" in changes and changes["date"] != as_utc(event.date):
        changes["reminder_sent_at"] = None

    if not changes:
        return event

    statement = (
        update(Event)
        .where(Event.id == event_id)
        .where(Event.organizer == organizer)
        .values(**changes)
    )
    if merged.max_participants is not None:
        statement = statement.where(Event.attendee_count <= merged.max_participants)
    result = session.execute(statement, execution_options=NO_SYNC)

    if result.rowcount == 0:
        session.rollback()
        event = get_event(session, event_id)
        _require_organizer(event, requesting_name)
        raise ValidationError(
            "max_participants",
            f"max_participants cannot be lower than the {event.attendee_count} current attendees",
        )

    session.commit()
    session.refresh(event)
    logger.info(f"Event {event_id} updated by {organizer}: {sorted(changes)}")
    return event


def delete_event(session: Session, event_id: UUID, requesting_name: str | None) -> None:
    """
    Delete one event with its attendees and comments.

    Other instances of the same series are left untouched.

    Raises:
        NotFound: If the event does not exist.
        Forbidden: If ``requesting_name`` is not the organizer.
    """
    event = get_event(session, event_id)
    _require_organizer(event, requesting_name)
    organizer = event.organizer
    delete_events(session, [event_id])
    session.commit()
    session.expunge(event)
    logger.info(f"Event {event_id} deleted by {organizer}")


def delete_events(session: Session, event_ids: list[UUID]) -> None:
    """Delete events and their dependents inside the caller's transaction."""
    if not event_ids:
        return
    session.execute(
        delete(Attendee).where(Attendee.event_id.in_(event_ids)), execution_options=NO_SYNC
    )
    session.execute(
        delete(Comment).where(Comment.event_id.in_(event_ids)), execution_options=NO_SYNC
    )
    session.execute(delete(Event).where(Event.id.in_(event_ids)), execution_options=NO_SYNC)
