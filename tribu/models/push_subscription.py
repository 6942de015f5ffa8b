"""Push subscription model for Web Push delivery.

This module defines the PushSubscription model which stores the browser
endpoint and keys a parent handed over when opting in to notifications,
along with the name and groups they want to be notified for. Rows are
deleted when the push service reports the endpoint as gone.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class PushSubscription(SQLModel, table=True):
    """A browser push endpoint and the recipient it belongs to.

    Attributes:
        id: Unique identifier (UUID).
        endpoint: Push service URL for this browser (unique).
        p256dh: Client public key used to encrypt payloads.
        auth: Client auth secret used to encrypt payloads.
        username: Display name the subscriber uses when joining events.
        username_key: Case-folded username, matched against attendee names.
        group_ids: Ids (as strings) of the groups the subscriber follows.
            Always reassign the list; in-place mutation is not tracked.
        created_at: First opt-in.
        updated_at: Last opt-in refresh.
    """
    __tablename__ = "push_subscription"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    endpoint: str = Field(index=True, unique=True)
    p256dh: str
    auth: str
    username: str = Field(default="")
    username_key: str = Field(default="", index=True)
    group_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def follows_group(self, group_id: UUID | str | None) -> bool:
        return group_id is not None and str(group_id) in self.group_ids
