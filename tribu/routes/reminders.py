"""Reminder routes for triggering the sweep from an external cron."""
import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from sqlmodel import Session

from tribu.core.database import get_session
from tribu.outings.reminders import run_reminder_sweep
from tribu.push.client import PushGateway, get_push_gateway
from tribu.schemas import SweepResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reminders", tags=["reminders"])


@router.post("/sweep")
async def sweep(
    now: datetime | None = None,
    session: Session = Depends(get_session),
    gateway: PushGateway | None = Depends(get_push_gateway),
) -> SweepResult:
    """
    Run one reminder sweep.

    ``now`` defaults to the current time; passing it replays a sweep.
    Without VAPID keys nothing is sent and no event is flagged, so
    reminders go out once push is configured.
    """
    if gateway is None:
        logger.warning("No VAPID keys configured, skipping reminder sweep")
        return SweepResult(events_notified=0, recipients_notified=0, failures=0, pruned=0)

    stats = run_reminder_sweep(session, gateway, now or datetime.now(UTC))
    return SweepResult(
        events_notified=stats.events_notified,
        recipients_notified=stats.recipients_notified,
        failures=stats.failures,
        pruned=stats.pruned,
    )
