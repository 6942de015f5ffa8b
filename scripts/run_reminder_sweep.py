#!/usr/bin/env python3
"""
Run one reminder sweep, for hosts that trigger it from cron instead of the
in-process scheduler.

Usage:
    python scripts/run_reminder_sweep.py [--dry-run]

Options:
    --dry-run    List due events and their recipients without sending or
                 flagging anything
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import UTC, datetime

from sqlmodel import Session

from tribu.core.database import create_db_and_tables, engine
from tribu.outings.reminders import (
    default_window,
    find_due_events,
    recipients_for,
    run_reminder_sweep,
)
from tribu.push.client import get_push_gateway


def main(dry_run: bool = False):
    """Sweep events starting within the reminder window."""
    create_db_and_tables()
    now = datetime.now(UTC)

    with Session(engine) as session:
        if dry_run:
            due = find_due_events(session, now, default_window())
            print(f"{len(due)} event(s) due for a reminder")
            for event in due:
                recipients = recipients_for(session, event)
                print(f"  {event.date:%Y-%m-%d %H:%M}  {event.title}: {len(recipients)} recipient(s)")
            return

        gateway = get_push_gateway()
        if gateway is None:
            print("Error: VAPID keys are not configured.")
            print("Run 'python scripts/generate_vapid_keys.py' and update .env first.")
            sys.exit(1)

        stats = run_reminder_sweep(session, gateway, now)
        print(
            f"Reminded {stats.recipients_notified} recipient(s) for "
            f"{stats.events_notified} event(s); {stats.failures} failed, {stats.pruned} pruned"
        )


if __name__ == "__main__":
    main(dry_run="--dry-run" in sys.argv)
