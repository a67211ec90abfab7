"""Streak stats for the UI widget, computed from the user's journal entry dates."""
import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from noted.core.clock import as_utc, utcnow
from noted.core.streaks import streak_stats
from noted.models.journal_entry import JournalEntry
from noted.models.notification_preference import NotificationPreference

logger = logging.getLogger(__name__)


def local_today(db: Session, user_id: str, now: datetime | None = None) -> date:
    """Today's date in the user's preferred timezone (UTC when unset or unknown)."""
    now = as_utc(now) if now else utcnow()
    tz_name = (
        db.query(NotificationPreference.timezone)
        .filter(NotificationPreference.user_id == user_id)
        .scalar()
    )
    try:
        return now.astimezone(ZoneInfo(tz_name or "UTC")).date()
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r for %s; using UTC", tz_name, user_id)
        return now.date()


def get_streak_stats(db: Session, user_id: str, now: datetime | None = None) -> dict:
    dates = [
        row.entry_date
        for row in db.query(JournalEntry.entry_date).filter(JournalEntry.user_id == user_id).distinct().all()
    ]
    return streak_stats(dates, local_today(db, user_id, now))
