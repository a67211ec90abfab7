"""Test doubles and row builders shared across test modules."""
import threading
import time
from datetime import date, datetime, time as dtime, timezone

from noted.core.constants import DAILY_REMINDER, STATUS_PENDING
from noted.core.errors import DeliveryError
from noted.models import (
    CustomReminder,
    JournalEntry,
    NotificationJob,
    NotificationPreference,
    Profile,
    StreakSnapshot,
)

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeTransport:
    """Records every send. Addresses in fail_for raise DeliveryError; addresses in hang_for sleep first."""

    def __init__(self, fail_for=(), hang_for=(), hang_seconds=2.0):
        self.sent: list[tuple[str, str, str]] = []
        self.fail_for = set(fail_for)
        self.hang_for = set(hang_for)
        self.hang_seconds = hang_seconds
        self.opened = 0
        self.closed = 0
        self._lock = threading.Lock()

    def __enter__(self):
        self.opened += 1
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed += 1

    def send(self, to_email: str, subject: str, html_body: str) -> None:
        if to_email in self.hang_for:
            time.sleep(self.hang_seconds)
        if to_email in self.fail_for:
            raise DeliveryError("550 5.1.1 mailbox unavailable")
        with self._lock:
            self.sent.append((to_email, subject, html_body))

    @property
    def recipients(self) -> list[str]:
        return [to for to, _, _ in self.sent]


def add_user(db, user_id, *, email=None, name="Ada", streak=0, total_entries=0, with_prefs=True, **pref):
    """Profile + streak snapshot + preferences (master switch on unless pref overrides it)."""
    db.add(Profile(user_id=user_id, name=name, email=email if email is not None else f"{user_id}@example.com"))
    db.add(StreakSnapshot(user_id=user_id, current_streak=streak, longest_streak=streak, total_entries=total_entries))
    if with_prefs:
        values = {"email_reminders_enabled": True}
        values.update(pref)
        db.add(NotificationPreference(user_id=user_id, **values))
    db.commit()


def add_job(db, user_id, *, type=DAILY_REMINDER, status=STATUS_PENDING, scheduled_for=None, email=None, **kw):
    job = NotificationJob(
        user_id=user_id,
        email=email if email is not None else f"{user_id}@example.com",
        type=type,
        status=status,
        scheduled_for=scheduled_for or NOW,
        **kw,
    )
    db.add(job)
    db.commit()
    return job.id


def add_reminder(db, user_id, *, title="Call mom", next_reminder_at=None, reminder_type="once",
                 is_active=True, created_at=None, description=None):
    row = CustomReminder(
        user_id=user_id,
        title=title,
        description=description,
        next_reminder_at=next_reminder_at or NOW,
        reminder_type=reminder_type,
        is_active=is_active,
        created_at=created_at or NOW,
        updated_at=created_at or NOW,
    )
    db.add(row)
    db.commit()
    return row.id


def add_entries(db, user_id, dates: list[date]):
    """One entry per date, written at noon UTC."""
    for d in dates:
        written_at = datetime.combine(d, dtime(12, 0), tzinfo=timezone.utc)
        db.add(JournalEntry(user_id=user_id, entry_date=d, created_at=written_at))
    db.commit()
