"""
Producer side of the email queue: turn notification preferences into notification_jobs rows.

Runs every minute. For each user with the master switch on, in the user's timezone:
  - daily reminder on configured weekdays once local time >= reminder_time
  - weekly summary on Sundays once local time >= reminder_time
  - streak milestone when the current streak is in the milestone table (once per streak run)

enqueue_inactive_users runs hourly and queues a re-engagement email when a user crosses
3 / 7 / 14 / 30 days without an entry (once per threshold, never twice within 2 days).
Each job carries a dedupe_key (unique per user), so re-running the scan never double-queues.
"""
import logging
from datetime import date, datetime, time as dtime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from noted.core.clock import as_utc, utcnow
from noted.core.constants import (
    DAILY_REMINDER,
    DEFAULT_REMINDER_TIME,
    INACTIVE_RESEND_GUARD_DAYS,
    INACTIVE_USER,
    STATUS_PENDING,
    STREAK_MILESTONE,
    WEEKDAYS,
    WEEKLY_SUMMARY,
    WEEKLY_SUMMARY_WEEKDAY,
)
from noted.core.streaks import days_since, inactivity_threshold, is_milestone, streak_start
from noted.models.journal_entry import JournalEntry
from noted.models.notification_job import NotificationJob
from noted.models.notification_preference import NotificationPreference
from noted.models.profile import Profile
from noted.models.streak_snapshot import StreakSnapshot

logger = logging.getLogger(__name__)

_UTC = ZoneInfo("UTC")


def _zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo((name or "").strip() or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; using UTC", name)
        return _UTC


def parse_reminder_time(value: str | None) -> dtime:
    """'HH:MM' (or 'HH:MM:SS') -> time; falls back to 20:00 on anything unparseable."""
    raw = (value or "").strip() or DEFAULT_REMINDER_TIME
    try:
        parts = [int(p) for p in raw.split(":")[:2]]
        return dtime(hour=parts[0], minute=parts[1] if len(parts) > 1 else 0)
    except (ValueError, IndexError):
        hour, minute = DEFAULT_REMINDER_TIME.split(":")
        return dtime(hour=int(hour), minute=int(minute))


def enqueue_job(
    db: Session,
    *,
    user_id: str,
    email: str,
    notification_type: str,
    scheduled_for: datetime,
    dedupe_key: str,
    reminder_id: int | None = None,
) -> bool:
    """Insert one pending job unless (user_id, dedupe_key) exists. Commits. True if inserted."""
    exists = (
        db.query(NotificationJob.id)
        .filter(NotificationJob.user_id == user_id, NotificationJob.dedupe_key == dedupe_key)
        .first()
    )
    if exists:
        return False
    db.add(
        NotificationJob(
            user_id=user_id,
            email=email,
            type=notification_type,
            status=STATUS_PENDING,
            scheduled_for=as_utc(scheduled_for),
            dedupe_key=dedupe_key,
            reminder_id=reminder_id,
        )
    )
    try:
        db.commit()
    except IntegrityError:
        # Another producer inserted the same key between our check and insert
        db.rollback()
        return False
    return True


def _milestone_key(streak: StreakSnapshot, last_entry: date | None, tz: ZoneInfo) -> str:
    """
    Same key on every scan while one streak run stays at this length, so the user gets the
    email once; reaching the same length again in a later run gives a new key.
    """
    if last_entry is None:
        # No entries visible; the snapshot only changes when a new entry moves the streak
        last_entry = as_utc(streak.updated_at).astimezone(tz).date()
    start = streak_start(last_entry, streak.current_streak)
    return f"{STREAK_MILESTONE}:{streak.current_streak}:{start.isoformat()}"


def enqueue_due_notifications(db: Session, now: datetime | None = None) -> dict[str, int]:
    now = as_utc(now) if now else utcnow()
    counts = {DAILY_REMINDER: 0, WEEKLY_SUMMARY: 0, STREAK_MILESTONE: 0, "no_email": 0}
    prefs = (
        db.query(NotificationPreference)
        .filter(NotificationPreference.email_reminders_enabled.is_(True))
        .all()
    )
    if not prefs:
        return counts
    user_ids = [p.user_id for p in prefs]
    profiles = {p.user_id: p for p in db.query(Profile).filter(Profile.user_id.in_(user_ids)).all()}
    streaks = {s.user_id: s for s in db.query(StreakSnapshot).filter(StreakSnapshot.user_id.in_(user_ids)).all()}
    last_entries = dict(
        db.query(JournalEntry.user_id, func.max(JournalEntry.entry_date))
        .filter(JournalEntry.user_id.in_(user_ids))
        .group_by(JournalEntry.user_id)
        .all()
    )

    for pref in prefs:
        profile = profiles.get(pref.user_id)
        email = ((profile.email if profile else None) or "").strip()
        if not email:
            counts["no_email"] += 1
            continue
        frequency = (pref.email_frequency or "daily").lower()
        if frequency == "never":
            continue
        tz = _zone(pref.timezone)
        local_now = now.astimezone(tz)
        at = parse_reminder_time(pref.reminder_time)
        local_due = local_now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
        due_utc = local_due.astimezone(_UTC)
        past_due = local_now >= local_due
        local_date = local_now.date().isoformat()
        weekday = WEEKDAYS[local_now.weekday()]
        days = {d.lower() for d in (pref.reminder_days or WEEKDAYS)}

        if pref.daily_reminder and frequency == "daily" and weekday in days and past_due:
            if enqueue_job(
                db,
                user_id=pref.user_id,
                email=email,
                notification_type=DAILY_REMINDER,
                scheduled_for=due_utc,
                dedupe_key=f"{DAILY_REMINDER}:{local_date}",
            ):
                counts[DAILY_REMINDER] += 1

        if pref.weekly_reminder and local_now.weekday() == WEEKLY_SUMMARY_WEEKDAY and past_due:
            iso_year, iso_week, _ = local_now.isocalendar()
            if enqueue_job(
                db,
                user_id=pref.user_id,
                email=email,
                notification_type=WEEKLY_SUMMARY,
                scheduled_for=due_utc,
                dedupe_key=f"{WEEKLY_SUMMARY}:{iso_year}-W{iso_week:02d}",
            ):
                counts[WEEKLY_SUMMARY] += 1

        streak = streaks.get(pref.user_id)
        if pref.milestone_notifications and streak is not None and is_milestone(streak.current_streak):
            if enqueue_job(
                db,
                user_id=pref.user_id,
                email=email,
                notification_type=STREAK_MILESTONE,
                scheduled_for=now,
                dedupe_key=_milestone_key(streak, last_entries.get(pref.user_id), tz),
            ):
                counts[STREAK_MILESTONE] += 1

    queued = counts[DAILY_REMINDER] + counts[WEEKLY_SUMMARY] + counts[STREAK_MILESTONE]
    if queued:
        logger.info(
            "Enqueued %s notification job(s): daily=%s weekly=%s milestone=%s",
            queued,
            counts[DAILY_REMINDER],
            counts[WEEKLY_SUMMARY],
            counts[STREAK_MILESTONE],
        )
    return counts


def enqueue_inactive_users(db: Session, now: datetime | None = None) -> dict[str, int]:
    """
    Re-engagement scan over users who have written at least once. One job per threshold
    crossed during an inactivity spell (keyed by the last entry's date), and none while an
    inactive_user email went out within the resend guard window.
    """
    now = as_utc(now) if now else utcnow()
    counts = {INACTIVE_USER: 0, "no_email": 0, "recently_sent": 0}
    last_written = dict(
        db.query(JournalEntry.user_id, func.max(JournalEntry.created_at))
        .group_by(JournalEntry.user_id)
        .all()
    )
    if not last_written:
        return counts
    prefs = (
        db.query(NotificationPreference)
        .filter(
            NotificationPreference.email_reminders_enabled.is_(True),
            NotificationPreference.streak_notifications.is_(True),
            NotificationPreference.user_id.in_(list(last_written)),
        )
        .all()
    )
    if not prefs:
        return counts
    user_ids = [p.user_id for p in prefs]
    profiles = {p.user_id: p for p in db.query(Profile).filter(Profile.user_id.in_(user_ids)).all()}
    guard_since = now - timedelta(days=INACTIVE_RESEND_GUARD_DAYS)
    recently_sent = {
        user_id
        for (user_id,) in db.query(NotificationJob.user_id).filter(
            NotificationJob.type == INACTIVE_USER,
            NotificationJob.user_id.in_(user_ids),
            NotificationJob.scheduled_for > guard_since,
        )
    }

    for pref in prefs:
        if (pref.email_frequency or "daily").lower() == "never":
            continue
        last_at = as_utc(last_written[pref.user_id])
        threshold = inactivity_threshold(days_since(last_at, now))
        if threshold is None:
            continue
        profile = profiles.get(pref.user_id)
        email = ((profile.email if profile else None) or "").strip()
        if not email:
            counts["no_email"] += 1
            continue
        if pref.user_id in recently_sent:
            counts["recently_sent"] += 1
            continue
        if enqueue_job(
            db,
            user_id=pref.user_id,
            email=email,
            notification_type=INACTIVE_USER,
            scheduled_for=now,
            dedupe_key=f"{INACTIVE_USER}:{threshold}:{last_at.date().isoformat()}",
        ):
            counts[INACTIVE_USER] += 1

    if counts[INACTIVE_USER]:
        logger.info("Enqueued %s inactive-user email(s)", counts[INACTIVE_USER])
    return counts
