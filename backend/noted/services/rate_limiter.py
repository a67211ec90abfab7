"""
Quota gate for custom reminders: per-user daily creation cap and active-reminder cap.

get_status() is the read path (no side effects; feeds the UI quota badge).
reminder_quota() is the write path: it takes a per-user transactional lock, re-counts
inside the transaction and raises RateLimitExceeded before the caller inserts/reactivates.
The lock is held until the caller commits or rolls back, so two concurrent requests from
the same user cannot both pass the check.
"""
import logging
import threading
import zlib
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, text
from sqlalchemy.orm import Session

from noted.config import settings
from noted.core.clock import next_utc_midnight, start_of_utc_day, utcnow
from noted.core.errors import RateLimitExceeded
from noted.models.custom_reminder import CustomReminder

logger = logging.getLogger(__name__)

# Process-local fallback for databases without advisory locks (SQLite in dev/tests)
_local_locks: dict[str, threading.Lock] = {}
_local_locks_guard = threading.Lock()


@dataclass(frozen=True)
class RateLimitStatus:
    reminders_created_today: int
    max_reminders_per_day: int
    active_reminders: int
    max_active_reminders: int
    can_create_more: bool
    reset_at: datetime

    @property
    def daily_exhausted(self) -> bool:
        return self.reminders_created_today >= self.max_reminders_per_day

    @property
    def active_exhausted(self) -> bool:
        return self.active_reminders >= self.max_active_reminders

    def as_dict(self) -> dict:
        return {
            "reminders_created_today": self.reminders_created_today,
            "max_reminders_per_day": self.max_reminders_per_day,
            "active_reminders": self.active_reminders,
            "max_active_reminders": self.max_active_reminders,
            "can_create_more": self.can_create_more,
            "reset_at": self.reset_at.isoformat(),
        }


def get_status(
    db: Session,
    user_id: str,
    now: datetime | None = None,
    *,
    max_per_day: int | None = None,
    max_active: int | None = None,
) -> RateLimitStatus:
    now = now or utcnow()
    max_per_day = settings.max_reminders_per_day if max_per_day is None else max_per_day
    max_active = settings.max_active_reminders if max_active is None else max_active
    created_today = (
        db.query(func.count(CustomReminder.id))
        .filter(
            CustomReminder.user_id == user_id,
            CustomReminder.created_at >= start_of_utc_day(now),
        )
        .scalar()
    ) or 0
    active = (
        db.query(func.count(CustomReminder.id))
        .filter(CustomReminder.user_id == user_id, CustomReminder.is_active.is_(True))
        .scalar()
    ) or 0
    return RateLimitStatus(
        reminders_created_today=created_today,
        max_reminders_per_day=max_per_day,
        active_reminders=active,
        max_active_reminders=max_active,
        can_create_more=created_today < max_per_day and active < max_active,
        reset_at=next_utc_midnight(now),
    )


def _lock_key(user_id: str) -> int:
    # Signed 32-bit key for pg_advisory_xact_lock(int)
    return zlib.crc32(f"custom_reminders:{user_id}".encode()) - 2**31


def _local_lock(user_id: str) -> threading.Lock:
    with _local_locks_guard:
        lock = _local_locks.get(user_id)
        if lock is None:
            lock = _local_locks[user_id] = threading.Lock()
        return lock


@contextmanager
def reminder_quota(
    db: Session,
    user_id: str,
    *,
    creating: bool,
    now: datetime | None = None,
    max_per_day: int | None = None,
    max_active: int | None = None,
):
    """
    Enforce both caps for one write. Usage:

        with reminder_quota(db, user_id, creating=True):
            db.add(reminder)
            db.commit()

    creating=True checks the daily cap and the active cap; creating=False (reactivation)
    checks the active cap only. On refusal nothing is written and the transaction is rolled back.
    """
    dialect = db.get_bind().dialect.name
    local = None
    if dialect == "postgresql":
        # Released automatically at COMMIT/ROLLBACK
        db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": _lock_key(user_id)})
    else:
        local = _local_lock(user_id)
        local.acquire()
    try:
        status = get_status(db, user_id, now, max_per_day=max_per_day, max_active=max_active)
        if creating and status.daily_exhausted:
            db.rollback()
            logger.info("Reminder creation refused for %s: daily cap %s reached", user_id, status.max_reminders_per_day)
            raise RateLimitExceeded("daily", status)
        if status.active_exhausted:
            db.rollback()
            logger.info("Reminder %s refused for %s: active cap %s reached",
                        "creation" if creating else "reactivation", user_id, status.max_active_reminders)
            raise RateLimitExceeded("active", status)
        yield status
    finally:
        if local is not None:
            local.release()
