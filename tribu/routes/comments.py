"""Comment routes for discussion under an event."""
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlmodel import Session

from tribu.core.database import get_session
from tribu.outings.attendance import add_comment, get_event, list_comments
from tribu.outings.identity import (
    ClientIdentity,
    IdentityStore,
    get_identity,
    get_identity_store,
)
from tribu.push.client import PushGateway, PushPayload, get_push_gateway
from tribu.push.notify import send_push_to_user
from tribu.schemas import CommentCreate, CommentRead

router = APIRouter(prefix="/events/{event_id}/comments", tags=["comments"])

PREVIEW_LENGTH = 80


@router.get("")
async def event_comments(event_id: UUID, session: Session = Depends(get_session)) -> list[CommentRead]:
    """List comments of an event, oldest first."""
    return [CommentRead.from_comment(c) for c in list_comments(session, event_id)]


@router.post("", status_code=201)
async def post_comment(
    event_id: UUID,
    body: CommentCreate,
    response: Response,
    identity: ClientIdentity = Depends(get_identity),
    store: IdentityStore = Depends(get_identity_store),
    session: Session = Depends(get_session),
    gateway: PushGateway | None = Depends(get_push_gateway),
) -> CommentRead:
    """
    Post a comment.

    Returns the stored comment for immediate display. The author name is
    remembered and the organizer is notified unless they wrote it.
    """
    comment = add_comment(session, event_id, body.author or identity.username, body.content)
    store.save(response, identity.with_username(comment.author))

    event = get_event(session, event_id)
    if comment.author != event.organizer:
        preview = comment.content[:PREVIEW_LENGTH]
        send_push_to_user(
            session,
            gateway,
            event.organizer,
            PushPayload(
                title=f"{comment.author} sur {event.title}",
                body=preview,
                url=f"/events/{event.id}",
            ),
        )
    return CommentRead.from_comment(comment)
