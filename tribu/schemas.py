"""Request and response models for the HTTP API.

Input models keep required text fields optional at the type level so that
missing values reach the outing services, which report them as a
``ValidationError`` naming the field rather than a framework-level 422.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlmodel import Field, SQLModel

from tribu.core.database import as_utc
from tribu.models import Comment, Event, EventCategory, Group


class RecurrenceMode(str, Enum):
    """How a submitted event is repeated."""

    NONE = "none"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class RecurrenceSpec(SQLModel):
    """Mode, interval and count describing one series expansion."""

    mode: RecurrenceMode = RecurrenceMode.NONE
    occurrence_count: int | None = None
    interval_days: int | None = None


class EventFields(SQLModel):
    """Editable event content, shared by creation and update."""

    title: str = ""
    description: str = ""
    category: EventCategory = EventCategory.AUTRE
    location: str = ""
    latitude: float | None = None
    longitude: float | None = None
    event_link: str = ""
    date: datetime | None = None
    end_date: datetime | None = None
    price: str = "Gratuit"
    max_participants: int | None = None
    age_min: int | None = None
    age_max: int | None = None
    organizer: str = ""
    group_id: UUID | None = None
    image: str | None = None


class EventCreate(EventFields):
    """Body of ``POST /events``."""

    recurrence: RecurrenceMode = RecurrenceMode.NONE
    occurrence_count: int | None = None
    interval_days: int | None = None

    def recurrence_spec(self) -> RecurrenceSpec:
        return RecurrenceSpec(
            mode=self.recurrence,
            occurrence_count=self.occurrence_count,
            interval_days=self.interval_days,
        )

    def template(self) -> EventFields:
        return EventFields.model_validate(
            self.model_dump(exclude={"recurrence", "occurrence_count", "interval_days"})
        )


class EventUpdate(SQLModel):
    """Body of ``PUT /events/{id}``. Only the fields sent are changed."""

    title: str | None = None
    description: str | None = None
    category: EventCategory | None = None
    location: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    event_link: str | None = None
    date: datetime | None = None
    end_date: datetime | None = None
    price: str | None = None
    max_participants: int | None = None
    age_min: int | None = None
    age_max: int | None = None
    organizer: str | None = None
    group_id: UUID | None = None
    image: str | None = None
    requesting_name: str | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude={"requesting_name"})


class NameRequest(SQLModel):
    """Body of subscribe/unsubscribe and of organizer-gated deletes."""

    name: str | None = None


class AttendanceRead(SQLModel):
    event_id: UUID
    attendees: list[str]
    attendee_count: int
    max_participants: int | None
    status: str


class CommentCreate(SQLModel):
    author: str = ""
    content: str = ""


class CommentRead(SQLModel):
    id: UUID
    event_id: UUID
    author: str
    content: str
    created_at: datetime

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentRead":
        return cls(
            id=comment.id,
            event_id=comment.event_id,
            author=comment.author,
            content=comment.content,
            created_at=as_utc(comment.created_at),
        )


class EventRead(EventFields):
    """An event as returned to clients, with its attendance state."""

    id: UUID
    series_id: UUID | None
    created_at: datetime
    is_free: bool
    attendees: list[str]
    attendee_count: int
    status: str

    @classmethod
    def from_event(cls, event: Event, now: datetime) -> "EventRead":
        return cls(
            **event.model_dump(
                exclude={"attendee_count", "reminder_sent_at", "created_at", "date", "end_date"}
            ),
            date=as_utc(event.date),
            end_date=as_utc(event.end_date) if event.end_date else None,
            created_at=as_utc(event.created_at),
            is_free=event.is_free,
            attendees=[attendee.name for attendee in event.attendees],
            attendee_count=event.attendee_count,
            status=attendance_status(event, now),
        )


class EventDetail(EventRead):
    comments: list[CommentRead]

    @classmethod
    def from_event(cls, event: Event, now: datetime) -> "EventDetail":
        base = EventRead.from_event(event, now)
        return cls(
            **base.model_dump(),
            comments=[CommentRead.from_comment(comment) for comment in event.comments],
        )


class SeriesCreated(SQLModel):
    series_id: UUID | None
    events: list[EventRead]


class GroupCreate(SQLModel):
    name: str = ""
    created_by: str = ""


class GroupJoin(SQLModel):
    code: str = ""


class GroupRead(SQLModel):
    id: UUID
    name: str
    code: str
    created_by: str
    created_at: datetime

    @classmethod
    def from_group(cls, group: Group) -> "GroupRead":
        return cls(
            id=group.id,
            name=group.name,
            code=group.code,
            created_by=group.created_by,
            created_at=as_utc(group.created_at),
        )


class PushKeys(SQLModel):
    p256dh: str
    auth: str


class PushSubscriptionCreate(SQLModel):
    """Body of ``POST /push/subscriptions``, shaped like ``PushSubscription.toJSON()``."""

    endpoint: str
    keys: PushKeys
    username: str = ""
    group_ids: list[str] = Field(default_factory=list)


class PushUnsubscribe(SQLModel):
    endpoint: str


class SweepResult(SQLModel):
    events_notified: int
    recipients_notified: int
    failures: int
    pruned: int


def attendance_status(event: Event, now: datetime) -> str:
    """Return "past", "full" or "open" for an event."""
    if as_utc(event.date) <= as_utc(now):
        return "past"
    if event.is_full:
        return "full"
    return "open"
