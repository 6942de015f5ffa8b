"""Event routes for publishing, editing and joining outings."""
from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlmodel import Session

from tribu.core.database import as_utc, get_session
from tribu.models import Event
from tribu.outings.attendance import (
    delete_event,
    get_event,
    list_attendees,
    list_events,
    subscribe,
    unsubscribe,
    update_event,
)
from tribu.outings.identity import (
    ClientIdentity,
    IdentityStore,
    get_identity,
    get_identity_store,
)
from tribu.outings.recurrence import create_event_series
from tribu.push.client import PushGateway, PushPayload, get_push_gateway
from tribu.push.notify import send_push_to_group, send_push_to_user
from tribu.schemas import (
    AttendanceRead,
    EventCreate,
    EventDetail,
    EventRead,
    EventUpdate,
    NameRequest,
    SeriesCreated,
    attendance_status,
)

router = APIRouter(prefix="/events", tags=["events"])


def attendance_read(session: Session, event: Event) -> AttendanceRead:
    session.refresh(event)
    return AttendanceRead(
        event_id=event.id,
        attendees=list_attendees(session, event.id),
        attendee_count=event.attendee_count,
        max_participants=event.max_participants,
        status=attendance_status(event, datetime.now(UTC)),
    )


@router.get("")
async def visible_events(
    identity: ClientIdentity = Depends(get_identity),
    session: Session = Depends(get_session),
) -> list[EventRead]:
    """
    List events visible to the caller.

    Ungrouped events are visible to everyone; grouped events only to
    clients that joined the group. Sorted by start date.
    """
    now = datetime.now(UTC)
    events = list_events(session, list(identity.group_ids))
    return [EventRead.from_event(event, now) for event in events]


@router.post("", status_code=201)
async def create_event(
    body: EventCreate,
    response: Response,
    identity: ClientIdentity = Depends(get_identity),
    store: IdentityStore = Depends(get_identity_store),
    session: Session = Depends(get_session),
    gateway: PushGateway | None = Depends(get_push_gateway),
) -> SeriesCreated:
    """
    Create an event, or a whole series when a recurrence is given.

    All instances are stored in one transaction. Group followers get a
    single notification for the series.
    """
    series_id, events = create_event_series(session, body.template(), body.recurrence_spec())
    first = events[0]
    store.save(response, identity.with_username(first.organizer))

    if first.group_id is not None:
        when = as_utc(first.date)
        send_push_to_group(
            session,
            gateway,
            first.group_id,
            PushPayload(
                title=f"Nouvelle sortie : {first.title}",
                body=f"{first.location}, {when:%d/%m/%Y %H:%M}",
                url=f"/events/{first.id}",
            ),
            exclude_username=first.organizer,
        )

    now = datetime.now(UTC)
    return SeriesCreated(
        series_id=series_id,
        events=[EventRead.from_event(event, now) for event in events],
    )


@router.get("/{event_id}")
async def event_detail(event_id: UUID, session: Session = Depends(get_session)) -> EventDetail:
    """Return one event with its attendees and comments."""
    return EventDetail.from_event(get_event(session, event_id), datetime.now(UTC))


@router.put("/{event_id}")
async def edit_event(
    event_id: UUID,
    body: EventUpdate,
    identity: ClientIdentity = Depends(get_identity),
    session: Session = Depends(get_session),
) -> EventRead:
    """
    Edit one event. Only its organizer may do so.

    The requesting name is taken from the body, falling back to the
    remembered username. Other instances of the series are not changed.
    """
    requesting_name = body.requesting_name or identity.username
    event = update_event(session, event_id, body.changes(), requesting_name)
    return EventRead.from_event(event, datetime.now(UTC))


@router.delete("/{event_id}", status_code=204)
async def remove_event(
    event_id: UUID,
    requesting_name: str | None = None,
    identity: ClientIdentity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Delete one event. Only its organizer may do so."""
    delete_event(session, event_id, requesting_name or identity.username)
    return Response(status_code=204)


@router.post("/{event_id}/subscribe")
async def join_event(
    event_id: UUID,
    body: NameRequest,
    response: Response,
    identity: ClientIdentity = Depends(get_identity),
    store: IdentityStore = Depends(get_identity_store),
    session: Session = Depends(get_session),
    gateway: PushGateway | None = Depends(get_push_gateway),
) -> AttendanceRead:
    """
    Join an event.

    Rejected with EventFull, AlreadySubscribed or EventPast. The name is
    remembered for next time and the organizer is notified.
    """
    name = (body.name or identity.username).strip()
    subscribe(session, event_id, name)
    store.save(response, identity.with_username(name))

    event = get_event(session, event_id)
    if name != event.organizer:
        send_push_to_user(
            session,
            gateway,
            event.organizer,
            PushPayload(
                title=event.title,
                body=f"{name} participe à votre sortie",
                url=f"/events/{event.id}",
            ),
        )
    return attendance_read(session, event)


@router.post("/{event_id}/unsubscribe")
async def leave_event(
    event_id: UUID,
    body: NameRequest,
    identity: ClientIdentity = Depends(get_identity),
    session: Session = Depends(get_session),
) -> AttendanceRead:
    """Leave an event. Does nothing if the name was not on the list."""
    unsubscribe(session, event_id, body.name or identity.username)
    return attendance_read(session, get_event(session, event_id))
