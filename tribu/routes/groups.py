"""Group routes for creating, joining and leaving invite-coded groups."""
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlmodel import Session

from tribu.core.database import get_session
from tribu.outings.groups import create_group, delete_group, get_groups, join_group
from tribu.outings.identity import (
    ClientIdentity,
    IdentityStore,
    get_identity,
    get_identity_store,
)
from tribu.schemas import GroupCreate, GroupJoin, GroupRead

router = APIRouter(prefix="/groups", tags=["groups"])


@router.get("")
async def my_groups(
    identity: ClientIdentity = Depends(get_identity),
    session: Session = Depends(get_session),
) -> list[GroupRead]:
    """List the groups the caller joined. Unknown ids are ignored."""
    return [GroupRead.from_group(g) for g in get_groups(session, list(identity.group_ids))]


@router.post("", status_code=201)
async def new_group(
    body: GroupCreate,
    response: Response,
    identity: ClientIdentity = Depends(get_identity),
    store: IdentityStore = Depends(get_identity_store),
    session: Session = Depends(get_session),
) -> GroupRead:
    """Create a group and join it."""
    group = create_group(session, body.name, body.created_by or identity.username)
    store.save(response, identity.with_username(group.created_by).with_group(group.id))
    return GroupRead.from_group(group)


@router.post("/join")
async def join(
    body: GroupJoin,
    response: Response,
    identity: ClientIdentity = Depends(get_identity),
    store: IdentityStore = Depends(get_identity_store),
    session: Session = Depends(get_session),
) -> GroupRead:
    """
    Join a group by code.

    Joining twice is harmless: the group is remembered once.
    """
    group = join_group(session, body.code)
    store.save(response, identity.with_group(group.id))
    return GroupRead.from_group(group)


@router.post("/{group_id}/leave")
async def leave(
    group_id: UUID,
    response: Response,
    identity: ClientIdentity = Depends(get_identity),
    store: IdentityStore = Depends(get_identity_store),
):
    """Forget a group on this client. The group itself is untouched."""
    remaining = identity.without_group(group_id)
    store.save(response, remaining)
    return {"group_ids": [str(g) for g in remaining.group_ids]}


@router.delete("/{group_id}", status_code=204)
async def remove_group(
    group_id: UUID,
    confirm: bool = False,
    requesting_name: str | None = None,
    identity: ClientIdentity = Depends(get_identity),
    store: IdentityStore = Depends(get_identity_store),
    session: Session = Depends(get_session),
):
    """
    Delete a group with its events. Only its creator may do so.

    Requires ``?confirm=true``; without it nothing is changed.
    """
    delete_group(session, group_id, requesting_name or identity.username, confirm)
    response = Response(status_code=204)
    store.save(response, identity.without_group(group_id))
    return response
