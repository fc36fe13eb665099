"""
Recurrence arithmetic for recurring invoices and recurring expenses.

Pure functions only: nothing in here touches the database, so the same
schedule math drives invoice generation (the runner) and forward-looking
projections (reconciliation).

Calendar rules (python-dateutil relativedelta):
  - MONTHLY / YEARLY add calendar months / years and clamp to the last valid
    day, so Jan 31 + 1 month = Feb 28 (Feb 29 in a leap year) and
    Feb 29 + 1 year = Feb 28.
  - Expansion always re-applies advance() to the previous occurrence, so a
    schedule anchored on Jan 31 runs Jan 31, Feb 28, Mar 28, ...
"""

import logging
from datetime import date, datetime, time, timedelta, timezone as dt_timezone

from dateutil.relativedelta import relativedelta
from django.db import models

from .exceptions import ExpansionLimitExceeded, InvalidRecurrence

logger = logging.getLogger(__name__)

DEFAULT_EXPANSION_LIMIT = 1000

# Stored schedule dates are pinned to this UTC time-of-day.
NOON = time(12, 0)


class Frequency(models.TextChoices):
    DAILY = "DAILY", "Daily"
    WEEKLY = "WEEKLY", "Weekly"
    MONTHLY = "MONTHLY", "Monthly"
    YEARLY = "YEARLY", "Yearly"


# Fixed-length frequencies, in days per interval unit.
_DAY_STEPS = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
}


def validate_recurrence(frequency, interval) -> Frequency:
    """
    Fail fast on anything that can't produce a finite, forward-moving schedule.
    Returns the frequency as a Frequency member.
    """
    try:
        frequency = Frequency(frequency)
    except ValueError:
        raise InvalidRecurrence(f"Unknown frequency: {frequency!r}")

    if isinstance(interval, bool) or not isinstance(interval, int):
        raise InvalidRecurrence(f"Interval must be an integer, got {interval!r}")
    if interval < 1:
        raise InvalidRecurrence(f"Interval must be at least 1, got {interval}")

    return frequency


def advance(value: date, frequency, interval: int) -> date:
    """Add `interval` units of `frequency` to a date or datetime."""
    frequency = validate_recurrence(frequency, interval)

    if frequency == Frequency.DAILY:
        return value + timedelta(days=interval)
    if frequency == Frequency.WEEKLY:
        return value + timedelta(weeks=interval)
    if frequency == Frequency.MONTHLY:
        return value + relativedelta(months=interval)
    if frequency == Frequency.YEARLY:
        return value + relativedelta(years=interval)

    raise InvalidRecurrence(f"Unhandled frequency: {frequency!r}")


def expand(
    anchor: date,
    frequency,
    interval: int,
    window_start: date,
    window_end: date,
    limit: int = DEFAULT_EXPANSION_LIMIT,
    strict: bool = False,
) -> list:
    """
    Every occurrence of the schedule that falls inside [window_start, window_end].

    Iteration starts at `anchor` and walks forward one advance() at a time.
    `limit` bounds the number of steps taken. Hitting it logs a warning and
    returns what was collected so far, or raises ExpansionLimitExceeded when
    `strict` is set (callers that must not report a partial list).

    anchor and the window bounds must be the same kind (all dates, or all
    aware datetimes).
    """
    frequency = validate_recurrence(frequency, interval)

    if anchor > window_end or window_start > window_end:
        return []

    current = anchor

    # Day-based steps are exact multiples, so jumping over the pre-window
    # stretch lands on the same dates as stepping through it.
    step_days = _DAY_STEPS.get(frequency)
    if step_days and current < window_start:
        period = step_days * interval
        skipped = (window_start - current).days // period
        current = current + timedelta(days=skipped * period)

    occurrences = []
    steps = 0
    while current <= window_end:
        if steps >= limit:
            message = (
                f"Recurrence expansion stopped after {limit} steps "
                f"(anchor={anchor}, frequency={frequency}, interval={interval})"
            )
            if strict:
                raise ExpansionLimitExceeded(message)
            logger.warning(message)
            break
        if current >= window_start:
            occurrences.append(current)
        current = advance(current, frequency, interval)
        steps += 1

    return occurrences


def noonify(value):
    """
    Normalize a date or datetime to 12:00 UTC on the same (UTC) calendar day.
    Naive datetimes are taken as UTC. None passes through.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(dt_timezone.utc)
        value = value.date()
    return datetime.combine(value, NOON, tzinfo=dt_timezone.utc)
