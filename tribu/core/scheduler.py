"""Background job scheduler for event reminders."""
import logging
from datetime import UTC, datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session

from tribu.core.config import settings
from tribu.core.database import engine
from tribu.outings.reminders import run_reminder_sweep
from tribu.push.client import get_push_gateway

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def reminder_job():
    """Background reminder sweep."""
    gateway = get_push_gateway()
    if gateway is None:
        logger.warning("No VAPID keys configured, skipping reminder sweep")
        return

    try:
        with Session(engine) as session:
            stats = run_reminder_sweep(session, gateway, datetime.now(UTC))
            logger.info(f"Background reminder sweep completed: {stats}")
    except Exception as e:
        logger.error(f"Background reminder sweep failed: {e}")


def start_scheduler():
    """Start the background scheduler."""
    scheduler.add_job(
        reminder_job,
        trigger=IntervalTrigger(minutes=settings.reminder_interval_minutes),
        id="event_reminders",
        replace_existing=True,
        max_instances=1,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started, sweeping reminders every {settings.reminder_interval_minutes} minutes"
    )


def shutdown_scheduler():
    """Graceful shutdown."""
    scheduler.shutdown(wait=False)
    logger.info("Scheduler shut down")
