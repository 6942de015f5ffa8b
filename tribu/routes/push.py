"""Push routes for opting in and out of notifications."""
from fastapi import APIRouter, Depends
from sqlmodel import Session

from tribu.core.config import settings
from tribu.core.database import get_session
from tribu.outings.identity import ClientIdentity, get_identity
from tribu.push.client import has_vapid_keys
from tribu.push.notify import delete_subscription, save_subscription
from tribu.schemas import PushSubscriptionCreate, PushUnsubscribe

router = APIRouter(prefix="/push", tags=["push"])


@router.get("/public-key")
async def public_key():
    """
    Return the VAPID public key the browser needs to subscribe.

    ``enabled`` is False when the server has no VAPID keys configured.
    """
    return {"enabled": has_vapid_keys(), "public_key": settings.vapid_public_key}


@router.post("/subscriptions", status_code=201)
async def opt_in(
    body: PushSubscriptionCreate,
    identity: ClientIdentity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """
    Store or refresh a browser push subscription.

    Name and groups default to the caller's remembered identity.
    """
    group_ids = body.group_ids or [str(g) for g in identity.group_ids]
    subscription = save_subscription(
        session,
        endpoint=body.endpoint,
        p256dh=body.keys.p256dh,
        auth=body.keys.auth,
        username=body.username or identity.username,
        group_ids=group_ids,
    )
    return {
        "endpoint": subscription.endpoint,
        "username": subscription.username,
        "group_ids": subscription.group_ids,
    }


@router.post("/unsubscribe")
async def opt_out(body: PushUnsubscribe, session: Session = Depends(get_session)):
    """Forget a browser push subscription."""
    return {"deleted": delete_subscription(session, body.endpoint)}
