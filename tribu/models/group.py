"""Group model for invite-coded circles of parents.

A group is typically a school or a class. Parents join by typing or
following a short shareable code; the server does not keep a membership
list, each client remembers the groups it joined.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tribu.models.event import Event


class Group(SQLModel, table=True):
    """A circle of parents sharing events.

    Attributes:
        id: Unique identifier (UUID).
        name: Display name ("CE1 Jules Ferry").
        code: Unique join code, upper-case, fixed length.
        created_by: Display name of the creator, compared verbatim to
            authorize deletion.
        created_at: When the group was created.
        events: Events published in this group.
    """
    __tablename__ = "groups"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    code: str = Field(index=True, unique=True)
    created_by: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationship
    events: list["Event"] = Relationship(back_populates="group")
