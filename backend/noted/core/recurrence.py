"""Recurrence for custom reminders: when does a reminder fire next after it fired at `fired_at`."""
from datetime import datetime, timedelta

from noted.core.clock import as_utc
from noted.core.constants import REMINDER_DAILY, REMINDER_WEEKLY

_STEPS = {
    REMINDER_DAILY: timedelta(days=1),
    REMINDER_WEEKLY: timedelta(days=7),
}


def next_occurrence(fired_at: datetime, reminder_type: str, now: datetime) -> datetime | None:
    """
    Next fire time strictly after now, keeping the original time of day, or None when the
    reminder does not repeat (once, custom). Missed occurrences are skipped, not replayed.
    """
    step = _STEPS.get(reminder_type)
    if step is None:
        return None
    fired_at, now = as_utc(fired_at), as_utc(now)
    if fired_at > now:
        return fired_at
    missed = (now - fired_at) // step
    return fired_at + step * (missed + 1)
