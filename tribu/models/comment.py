"""Comment model for discussion under an event."""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tribu.models.event import Event


class Comment(SQLModel, table=True):
    """An append-only message posted under an event.

    Attributes:
        id: Unique identifier (UUID).
        event_id: Foreign key to the parent Event.
        author: Display name of the poster.
        content: Message text.
        created_at: Commit time, used for display order.
        event: Reference to the parent Event object.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_id: UUID = Field(foreign_key="event.id", index=True)
    author: str
    content: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationship
    event: Optional["Event"] = Relationship(back_populates="comments")
