"""Push subscription storage and notification fan-out."""
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import String, cast
from sqlmodel import Session, select

from tribu.models import PushSubscription
from tribu.models.attendee import name_key
from tribu.push.client import DeliveryResult, PushGateway, PushPayload

logger = logging.getLogger(__name__)


@dataclass
class DeliveryStats:
    """Counters for one fan-out."""

    sent: int = 0
    failed: int = 0
    pruned: int = 0
    endpoints: list[str] = field(default_factory=list)


def save_subscription(
    session: Session,
    endpoint: str,
    p256dh: str,
    auth: str,
    username: str = "",
    group_ids: list[str] | None = None,
) -> PushSubscription:
    """Create or refresh the subscription for ``endpoint``."""
    subscription = session.exec(
        select(PushSubscription).where(PushSubscription.endpoint == endpoint)
    ).first()
    if subscription is None:
        subscription = PushSubscription(endpoint=endpoint, p256dh=p256dh, auth=auth)
        logger.info(f"New push subscription for '{username}'")

    subscription.p256dh = p256dh
    subscription.auth = auth
    subscription.username = (username or "").strip()
    subscription.username_key = name_key(subscription.username)
    subscription.group_ids = sorted({str(g) for g in group_ids or []})
    subscription.updated_at = datetime.now(UTC)
    session.add(subscription)
    session.commit()
    session.refresh(subscription)
    return subscription


def delete_subscription(session: Session, endpoint: str) -> bool:
    """Remove the subscription for ``endpoint``. Returns True if one existed."""
    subscription = session.exec(
        select(PushSubscription).where(PushSubscription.endpoint == endpoint)
    ).first()
    if subscription is None:
        return False
    session.delete(subscription)
    session.commit()
    return True


def subscriptions_for_names(session: Session, names: list[str]) -> list[PushSubscription]:
    """Return subscriptions whose username matches one of ``names`` (any case)."""
    keys = {name_key(n) for n in names if n and n.strip()}
    if not keys:
        return []
    statement = select(PushSubscription).where(PushSubscription.username_key.in_(keys))
    return list(session.exec(statement).all())


def subscriptions_for_group(session: Session, group_id: UUID | None) -> list[PushSubscription]:
    """Return subscriptions following ``group_id``."""
    if group_id is None:
        return []
    # LIKE on the stored JSON text narrows the scan, follows_group confirms
    pattern = f'%"{group_id}"%'
    statement = select(PushSubscription).where(cast(PushSubscription.group_ids, String).like(pattern))
    return [s for s in session.exec(statement).all() if s.follows_group(group_id)]


def deliver(
    session: Session,
    gateway: PushGateway,
    subscriptions: list[PushSubscription],
    payload: PushPayload,
) -> DeliveryStats:
    """
    Send ``payload`` once per distinct endpoint.

    Permanently failed subscriptions are deleted. Transient failures are
    logged and not retried. A failure never stops delivery to the others.
    """
    stats = DeliveryStats()
    seen: set[str] = set()

    for subscription in subscriptions:
        if subscription.endpoint in seen:
            continue
        seen.add(subscription.endpoint)

        try:
            result = gateway.send(subscription, payload)
        except Exception as e:
            logger.error(f"Push gateway error for {subscription.endpoint}: {e}")
            result = DeliveryResult.TRANSIENT_FAILURE

        if result == DeliveryResult.SUCCESS:
            stats.sent += 1
            stats.endpoints.append(subscription.endpoint)
        elif result == DeliveryResult.PERMANENT_FAILURE:
            stats.pruned += 1
            session.delete(subscription)
            logger.info(f"Pruned push subscription {subscription.endpoint}")
        else:
            stats.failed += 1

    if stats.pruned:
        session.commit()
    return stats


def send_push_to_user(
    session: Session, gateway: PushGateway | None, username: str, payload: PushPayload
) -> DeliveryStats:
    """Notify every device registered under ``username``."""
    if gateway is None:
        return DeliveryStats()
    return deliver(session, gateway, subscriptions_for_names(session, [username]), payload)


def send_push_to_group(
    session: Session,
    gateway: PushGateway | None,
    group_id: UUID,
    payload: PushPayload,
    exclude_username: str | None = None,
) -> DeliveryStats:
    """Notify every device following ``group_id``, optionally skipping one user."""
    if gateway is None:
        return DeliveryStats()
    subscriptions = subscriptions_for_group(session, group_id)
    if exclude_username:
        excluded = name_key(exclude_username)
        subscriptions = [s for s in subscriptions if s.username_key != excluded]
    return deliver(session, gateway, subscriptions, payload)
