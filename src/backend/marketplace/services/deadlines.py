"""
Deadline and validity classification.

Classifies an RFQ quote deadline or a quote's ``valid_until`` relative to a
reference instant. The result depends only on ``(deadline, now)``: naive
datetimes are read as UTC and no local timezone is consulted.
"""

import enum
import math
from dataclasses import dataclass
from datetime import datetime, timezone

MILLISECONDS_PER_DAY = 86_400_000

# Deadlines at most this many days away are urgent
URGENT_WINDOW_DAYS = 3


class DeadlineUrgency(str, enum.Enum):
    """Position of a deadline relative to now, ordered from calm to past."""

    NONE = "none"
    NOT_URGENT = "not_urgent"
    URGENT = "urgent"
    DUE_TOMORROW = "due_tomorrow"
    DUE_TODAY = "due_today"
    EXPIRED = "expired"


# Progression order used to assert that time only moves a deadline forward
URGENCY_ORDER: dict[DeadlineUrgency, int] = {
    DeadlineUrgency.NOT_URGENT: 0,
    DeadlineUrgency.URGENT: 1,
    DeadlineUrgency.DUE_TOMORROW: 2,
    DeadlineUrgency.DUE_TODAY: 3,
    DeadlineUrgency.EXPIRED: 4,
}


@dataclass(frozen=True)
class DeadlineStatus:
    """Classification of one deadline at one instant."""

    urgency: DeadlineUrgency
    days_left: int | None = None

    @property
    def is_urgent(self) -> bool:
        return self.urgency in (
            DeadlineUrgency.URGENT,
            DeadlineUrgency.DUE_TOMORROW,
            DeadlineUrgency.DUE_TODAY,
        )

    @property
    def is_expired(self) -> bool:
        return self.urgency is DeadlineUrgency.EXPIRED


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime, reading naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_past(deadline: datetime | None, now: datetime) -> bool:
    """True when ``deadline`` is set and ``now`` is strictly after it."""
    if deadline is None:
        return False
    return as_utc(now) > as_utc(deadline)


def days_until(deadline: datetime, now: datetime) -> int:
    """Whole days from ``now`` to ``deadline``, rounded up."""
    delta = as_utc(deadline) - as_utc(now)
    # Integer milliseconds keep the ceiling exact
    millis = delta.days * MILLISECONDS_PER_DAY + delta.seconds * 1000 + delta.microseconds // 1000
    return math.ceil(millis / MILLISECONDS_PER_DAY)


def classify_deadline(deadline: datetime | None, now: datetime) -> DeadlineStatus:
    """
    Classify ``deadline`` as seen at ``now``.

    Args:
        deadline: Quote deadline or validity end; None means no deadline
        now: Reference instant

    Returns:
        DeadlineStatus: urgency bucket plus remaining whole days (ceiling)

    Example:
        >>> now = datetime(2026, 3, 1, 9, tzinfo=timezone.utc)
        >>> classify_deadline(now + timedelta(days=2), now)
        DeadlineStatus(urgency=<DeadlineUrgency.URGENT: 'urgent'>, days_left=2)
    """
    if deadline is None:
        return DeadlineStatus(DeadlineUrgency.NONE)

    if is_past(deadline, now):
        return DeadlineStatus(DeadlineUrgency.EXPIRED, 0)

    days_left = days_until(deadline, now)
    if days_left == 0:
        return DeadlineStatus(DeadlineUrgency.DUE_TODAY, 0)
    if days_left == 1:
        return DeadlineStatus(DeadlineUrgency.DUE_TOMORROW, 1)
    if days_left <= URGENT_WINDOW_DAYS:
        return DeadlineStatus(DeadlineUrgency.URGENT, days_left)
    return DeadlineStatus(DeadlineUrgency.NOT_URGENT, days_left)
