"""Recurrence expansion for event creation.

A submitted event template plus a RecurrenceSpec becomes the ordered list
of concrete Event rows to persist. Every instance of a series carries the
same freshly generated ``series_id`` and identical content apart from its
dates.

Periods:
    weekly    7 days
    biweekly  14 days
    monthly   1 calendar month, same day of month
    custom    ``interval_days`` days

Monthly instances are computed from the base date, never from the previous
instance, with ``relativedelta(months=k)``. A base day that does not exist
in the target month is clamped to that month's last day, and later months
return to the base day: 2024-01-31 expands to 2024-02-29, then 2024-03-31.
"""
import logging
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from dateutil.relativedelta import relativedelta
from sqlmodel import Session

from tribu.core.database import as_utc
from tribu.models import Event, Group
from tribu.outings.errors import NotFound, ValidationError
from tribu.schemas import EventFields, RecurrenceMode, RecurrenceSpec

logger = logging.getLogger(__name__)

MIN_OCCURRENCES = 2
MAX_OCCURRENCES = 52
MIN_INTERVAL_DAYS = 1
MAX_INTERVAL_DAYS = 365
MIN_AGE = 0
MAX_AGE = 17

REQUIRED_FIELDS = ("title", "description", "location", "organizer")

FIXED_PERIODS = {
    RecurrenceMode.WEEKLY: timedelta(days=7),
    RecurrenceMode.BIWEEKLY: timedelta(days=14),
}


def validate_event_fields(fields: EventFields) -> None:
    """Check the content of an event template.

    Raises:
        ValidationError: Naming the first offending field.
    """
    for name in REQUIRED_FIELDS:
        if not (getattr(fields, name) or "").strip():
            raise ValidationError(name, f"{name} is required")
    if fields.date is None:
        raise ValidationError("date", "date is required")
    if fields.end_date is not None and as_utc(fields.end_date) < as_utc(fields.date):
        raise ValidationError("end_date", "end_date must not be before date")
    if fields.max_participants is not None and fields.max_participants < 1:
        raise ValidationError("max_participants", "max_participants must be a positive integer")
    for name in ("age_min", "age_max"):
        value = getattr(fields, name)
        if value is not None and not MIN_AGE <= value <= MAX_AGE:
            raise ValidationError(name, f"{name} must be between {MIN_AGE} and {MAX_AGE}")
    if (
        fields.age_min is not None
        and fields.age_max is not None
        and fields.age_min > fields.age_max
    ):
        raise ValidationError("age_min", "age_min must not exceed age_max")


def validate_recurrence(spec: RecurrenceSpec) -> None:
    """Check count and interval bounds for a recurrence spec.

    Raises:
        ValidationError: Naming ``occurrence_count`` or ``interval_days``.
    """
    if spec.mode == RecurrenceMode.NONE:
        return
    count = spec.occurrence_count
    if count is None or not MIN_OCCURRENCES <= count <= MAX_OCCURRENCES:
        raise ValidationError(
            "occurrence_count",
            f"occurrence_count must be between {MIN_OCCURRENCES} and {MAX_OCCURRENCES}",
        )
    if spec.mode == RecurrenceMode.CUSTOM:
        interval = spec.interval_days
        if interval is None or not MIN_INTERVAL_DAYS <= interval <= MAX_INTERVAL_DAYS:
            raise ValidationError(
                "interval_days",
                f"interval_days must be between {MIN_INTERVAL_DAYS} and {MAX_INTERVAL_DAYS}",
            )


def occurrence_offset(spec: RecurrenceSpec, k: int) -> timedelta | relativedelta:
    """Return the shift of instance ``k`` from the base date."""
    if spec.mode == RecurrenceMode.MONTHLY:
        return relativedelta(months=k)
    if spec.mode == RecurrenceMode.CUSTOM:
        return timedelta(days=spec.interval_days * k)
    return FIXED_PERIODS[spec.mode] * k


def occurrence_dates(
    base: datetime, end: datetime | None, spec: RecurrenceSpec
) -> list[tuple[datetime, datetime | None]]:
    """Return ``(date, end_date)`` for every instance of the series."""
    if spec.mode == RecurrenceMode.NONE:
        return [(base, end)]
    duration = end - base if end is not None else None
    dates = []
    for k in range(spec.occurrence_count):
        date = base + occurrence_offset(spec, k)
        # Month clamping moves date, so the end follows the clamped start.
        dates.append((date, date + duration if duration is not None else None))
    return dates


def expand_series(template: EventFields, spec: RecurrenceSpec) -> list[Event]:
    """Build the Event rows for a template and recurrence spec.

    Nothing is persisted. Dates are normalized to UTC before expansion.

    Raises:
        ValidationError: If the template or the recurrence is invalid.
    """
    validate_event_fields(template)
    validate_recurrence(spec)

    series_id: UUID | None = None if spec.mode == RecurrenceMode.NONE else uuid4()
    base = as_utc(template.date)
    end = as_utc(template.end_date) if template.end_date else None
    content = template.model_dump(exclude={"date", "end_date"})
    content["title"] = content["title"].strip()
    content["organizer"] = content["organizer"].strip()

    return [
        Event(**content, date=date, end_date=end_date, series_id=series_id)
        for date, end_date in occurrence_dates(base, end, spec)
    ]


def create_event_series(
    session: Session, template: EventFields, spec: RecurrenceSpec
) -> tuple[UUID | None, list[Event]]:
    """
    Expand and persist a series in one transaction.

    Either every instance is stored or none is: validation happens before
    anything is added, and a failing commit rolls the whole batch back.

    Returns:
        The series id (None for a one-off event) and the stored events in
        date order.

    Raises:
        ValidationError: If the template or the recurrence is invalid.
        NotFound: If ``template.group_id`` names an unknown group.
    """
    events = expand_series(template, spec)
    if template.group_id is not None and session.get(Group, template.group_id) is None:
        raise NotFound("Group", template.group_id)

    try:
        session.add_all(events)
        session.commit()
    except Exception:
        session.rollback()
        raise

    for event in events:
        session.refresh(event)

    series_id = events[0].series_id
    logger.info(
        f"Created {len(events)} event(s) '{events[0].title}' "
        f"(series={series_id}, recurrence={spec.mode.value})"
    )
    return series_id, events
