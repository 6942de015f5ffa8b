"""Event model for outings published by parents.

This module defines the Event model, the central entity of the app: a dated
outing with a place, an optional capacity and age range, the list of people
who joined it and the comments posted under it. Events produced by one
recurrence expansion share a ``series_id`` but are otherwise independent
rows.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tribu.models.attendee import Attendee
    from tribu.models.comment import Comment
    from tribu.models.group import Group

FREE_PRICES = {"gratuit", "free"}


class EventCategory(str, Enum):
    """Kind of outing, used for filtering and icons."""

    PARC = "parc"
    SPORT = "sport"
    MUSEE = "musee"
    SPECTACLE = "spectacle"
    RESTAURANT = "restaurant"
    ATELIER = "atelier"
    PISCINE = "piscine"
    BALADE = "balade"
    AUTRE = "autre"


class Event(SQLModel, table=True):
    """An outing that parents can join.

    Attributes:
        id: Unique identifier (UUID).
        series_id: Shared by every instance created from one recurrence
            expansion. None for one-off events.
        title: Short title shown on cards.
        description: Free-text description.
        category: One of EventCategory.
        location: Free-text address.
        latitude: Geocoded latitude, if the address was resolved.
        longitude: Geocoded longitude, if the address was resolved.
        event_link: Optional external link (ticketing, venue page).
        date: When the event starts.
        end_date: When the event ends, never before ``date``.
        price: Free text. "Gratuit" or "Free" means no cost.
        max_participants: Capacity ceiling, or None for unlimited.
        age_min: Youngest age the outing suits (0-17).
        age_max: Oldest age the outing suits (0-17).
        organizer: Display name of the creator. Not an authenticated
            identity; compared verbatim to authorize edits and deletes.
        group_id: Owning group. Ungrouped events are visible to everyone.
        image: Opaque reference to an uploaded image.
        created_at: When the event row was created.
        attendee_count: Number of Attendee rows, maintained by conditional
            updates so that it can be checked and bumped atomically.
        reminder_sent_at: Set once by the reminder sweep that claimed this
            event. Cleared when the start date moves.
        attendees: People who joined, in join order.
        comments: Comments, oldest first.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    series_id: UUID | None = Field(default=None, index=True)
    title: str
    description: str
    category: EventCategory = Field(default=EventCategory.AUTRE)
    location: str
    latitude: float | None = None
    longitude: float | None = None
    event_link: str = Field(default="")
    date: datetime = Field(index=True)
    end_date: datetime | None = None
    price: str = Field(default="Gratuit")
    max_participants: int | None = None
    age_min: int | None = None
    age_max: int | None = None
    organizer: str
    group_id: UUID | None = Field(default=None, foreign_key="groups.id", index=True)
    image: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    attendee_count: int = Field(default=0)
    reminder_sent_at: datetime | None = Field(default=None, index=True)

    # Relationships
    attendees: list["Attendee"] = Relationship(
        back_populates="event",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "Attendee.id"},
    )
    comments: list["Comment"] = Relationship(
        back_populates="event",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "Comment.created_at",
        },
    )
    group: Optional["Group"] = Relationship(back_populates="events")

    @property
    def is_free(self) -> bool:
        return self.price.strip().lower() in FREE_PRICES

    @property
    def is_full(self) -> bool:
        return (
            self.max_participants is not None
            and self.attendee_count >= self.max_participants
        )
