"""Attendee model for tracking who joined an event.

Attendance is name-based: an attendee is the display name a parent typed
when joining, not an account. Names are unique per event regardless of
case, which the ``(event_id, name_key)`` constraint enforces at the
database level.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tribu.models.event import Event


def name_key(name: str) -> str:
    """Normalize a display name for duplicate detection."""
    return name.strip().casefold()


class Attendee(SQLModel, table=True):
    """A person who joined an event.

    Attributes:
        id: Autoincrement key. Ordering by id gives join order.
        event_id: Foreign key to the joined Event.
        name: Display name as typed (trimmed).
        name_key: Case-folded name used for uniqueness.
        joined_at: When the subscription committed.
        event: Reference to the parent Event object.
    """
    __table_args__ = (UniqueConstraint("event_id", "name_key"),)

    id: int | None = Field(default=None, primary_key=True)
    event_id: UUID = Field(foreign_key="event.id", index=True)
    name: str
    name_key: str
    joined_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationship
    event: Optional["Event"] = Relationship(back_populates="attendees")
