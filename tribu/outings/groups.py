"""Invite-coded groups.

Codes are short, upper-case and drawn from an alphabet without look-alike
characters (no 0/O, 1/I/L) so they survive being read aloud at the school
gate. Membership is not stored server-side: a client that knows a code
remembers the group id in its identity store.
"""
import logging
import secrets
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from tribu.core.config import settings
from tribu.models import Event, Group, PushSubscription
from tribu.outings.attendance import delete_events
from tribu.outings.errors import Forbidden, NotFound, ValidationError

logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
MAX_CODE_ATTEMPTS = 10


def generate_code(length: int | None = None) -> str:
    """Return a random join code."""
    length = length or settings.group_code_length
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _code_taken(session: Session, code: str) -> bool:
    return session.exec(select(Group.id).where(Group.code == code)).first() is not None


def create_group(session: Session, name: str, created_by: str) -> Group:
    """
    Create a group with a fresh, unused join code.

    Collisions are checked before insert and, for the rare race between two
    creations drawing the same code, by the unique index; either way a new
    code is drawn.

    Raises:
        ValidationError: If name or created_by is blank, or no free code
            was found.
    """
    name = (name or "").strip()
    created_by = (created_by or "").strip()
    if not name:
        raise ValidationError("name", "name is required")
    if not created_by:
        raise ValidationError("created_by", "created_by is required")

    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_code()
        if _code_taken(session, code):
            continue
        group = Group(name=name, code=code, created_by=created_by)
        session.add(group)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.warning(f"Group code collision on insert: {code}")
            continue
        session.refresh(group)
        logger.info(f"Created group '{group.name}' with code {group.code}")
        return group

    raise ValidationError("code", "could not allocate a unique group code")


def join_group(session: Session, code: str) -> Group:
    """
    Resolve a join code to its group.

    Raises:
        NotFound: If no group has this code.
    """
    code = normalize_code(code)
    group = session.exec(select(Group).where(Group.code == code)).first() if code else None
    if group is None:
        raise NotFound("Group", code)
    return group


def get_groups(session: Session, group_ids: list[UUID]) -> list[Group]:
    """Return the known groups among ``group_ids``, oldest first."""
    if not group_ids:
        return []
    statement = select(Group).where(Group.id.in_(group_ids)).order_by(Group.created_at)
    return list(session.exec(statement).all())


def delete_group(
    session: Session, group_id: UUID, requesting_name: str | None, confirm: bool
) -> None:
    """
    Delete a group, its events and its entries in push subscriptions.

    Nothing changes until an explicit, confirmed delete commits.

    Raises:
        ValidationError: If ``confirm`` is not set.
        NotFound: If the group does not exist.
        Forbidden: If ``requesting_name`` is not the creator.
    """
    group = session.get(Group, group_id)
    if group is None:
        raise NotFound("Group", group_id)
    if (requesting_name or "").strip() != group.created_by:
        raise Forbidden()
    if not confirm:
        raise ValidationError("confirm", "deleting a group must be confirmed")

    event_ids = list(session.exec(select(Event.id).where(Event.group_id == group_id)).all())
    delete_events(session, event_ids)

    key = str(group_id)
    for subscription in session.exec(select(PushSubscription)).all():
        if key in subscription.group_ids:
            subscription.group_ids = [g for g in subscription.group_ids if g != key]
            session.add(subscription)

    session.delete(group)
    session.commit()
    logger.info(f"Deleted group {group_id} with {len(event_ids)} event(s)")
