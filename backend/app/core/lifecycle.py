"""
Rally lifecycle rules.

A rally moves through four time-driven phases:

    registration_open -> registration_closed -> active -> completed

The phase is a pure function of the current instant and the rally's two
timestamps, so it can be recomputed at any time and always converges on
the same answer for the same ``now``.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Union


# A rally counts as finished this long after the competition starts.
COMPLETION_GRACE = timedelta(hours=1)


class RallyStatus(str, Enum):
    """Rally status values stored in the ``rallies.status`` column."""
    UPCOMING = "upcoming"                        # Legacy initial value
    REGISTRATION_OPEN = "registration_open"
    REGISTRATION_CLOSED = "registration_closed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"                      # Set manually, never by the clock


# Statuses the clock is allowed to assign
LIFECYCLE_STATUSES = (
    RallyStatus.REGISTRATION_OPEN,
    RallyStatus.REGISTRATION_CLOSED,
    RallyStatus.ACTIVE,
    RallyStatus.COMPLETED,
)

STATUS_LABELS = {
    RallyStatus.REGISTRATION_OPEN: "Registreerimine avatud",
    RallyStatus.REGISTRATION_CLOSED: "Registreerimine suletud",
    RallyStatus.ACTIVE: "Käimasolev",
    RallyStatus.COMPLETED: "Lõppenud",
    RallyStatus.UPCOMING: "Tulemas",
    RallyStatus.CANCELLED: "Tühistatud",
}


def utc_now() -> datetime:
    """Return the current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def get_clock() -> Callable[[], datetime]:
    """
    Dependency function providing the time source.

    Tests override this to freeze time.
    """
    return utc_now


def as_utc(value: datetime) -> datetime:
    """
    Normalise a datetime to aware UTC.

    Naive values are treated as UTC, which is how the database stores them.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_status(
    competition_date: datetime,
    registration_deadline: datetime,
    now: datetime,
) -> RallyStatus:
    """
    Compute the status a rally should have at ``now``.

    Rules are checked in order and the first match wins. All comparisons
    are strict, so a rally sitting exactly on a boundary stays in the
    earlier phase.

    The deadline is not checked against the competition date. A deadline
    after the competition makes the rally skip ``registration_closed``.

    Args:
        competition_date: When the competition starts
        registration_deadline: When registration closes
        now: Instant to evaluate against

    Returns:
        One of the four lifecycle statuses
    """
    competition_date = as_utc(competition_date)
    registration_deadline = as_utc(registration_deadline)
    now = as_utc(now)

    if now - competition_date > COMPLETION_GRACE:
        return RallyStatus.COMPLETED
    if now > competition_date:
        return RallyStatus.ACTIVE
    if now > registration_deadline:
        return RallyStatus.REGISTRATION_CLOSED
    return RallyStatus.REGISTRATION_OPEN


def can_register(
    competition_date: datetime,
    registration_deadline: datetime,
    now: datetime,
) -> bool:
    """True while both the deadline and the competition are still ahead."""
    now = as_utc(now)
    return as_utc(registration_deadline) > now and as_utc(competition_date) > now


def is_finished(competition_date: datetime, now: datetime) -> bool:
    """True once the completion grace window has elapsed."""
    return as_utc(now) - as_utc(competition_date) > COMPLETION_GRACE


def status_label(status: Union[RallyStatus, str]) -> str:
    """Return the display text for a status, or the raw value if unknown."""
    try:
        return STATUS_LABELS[RallyStatus(status)]
    except ValueError:
        return str(status)
