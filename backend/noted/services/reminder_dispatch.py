"""
Fire due custom reminders: queue a reminder_notification email for each active reminder
whose next_reminder_at has passed, then move the reminder on.

once / custom -> deactivated after firing (custom has no stored rule to advance by)
daily / weekly -> next_reminder_at advanced past now (missed occurrences are not replayed)

One reminder failing is logged and counted; it never stops the rest of the run.
"""
import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from noted.core.clock import as_utc, utcnow
from noted.core.constants import REMINDER_NOTIFICATION
from noted.core.recurrence import next_occurrence
from noted.models.custom_reminder import CustomReminder
from noted.models.profile import Profile
from noted.services.job_scheduler import enqueue_job

logger = logging.getLogger(__name__)

# Cap per run so one tick stays short
DISPATCH_LIMIT = 500


def advance_reminder(reminder: CustomReminder, now: datetime) -> None:
    fired_at = as_utc(reminder.next_reminder_at)
    nxt = next_occurrence(fired_at, reminder.reminder_type, now)
    if nxt is None:
        reminder.is_active = False
    else:
        reminder.next_reminder_at = nxt
    reminder.updated_at = now


def dispatch_due_reminders(db: Session, now: datetime | None = None) -> dict[str, int]:
    now = as_utc(now) if now else utcnow()
    due = (
        db.query(CustomReminder)
        .filter(CustomReminder.is_active.is_(True), CustomReminder.next_reminder_at <= now)
        .order_by(CustomReminder.next_reminder_at.asc())
        .limit(DISPATCH_LIMIT)
        .all()
    )
    if not due:
        return {"processed": 0, "queued": 0, "skipped": 0}
    user_ids = list({r.user_id for r in due})
    emails = {
        p.user_id: (p.email or "").strip()
        for p in db.query(Profile).filter(Profile.user_id.in_(user_ids)).all()
    }

    queued = skipped = 0
    for reminder in due:
        reminder_id = reminder.id
        try:
            fired_at = as_utc(reminder.next_reminder_at)
            email = emails.get(reminder.user_id)
            if email:
                inserted = enqueue_job(
                    db,
                    user_id=reminder.user_id,
                    email=email,
                    notification_type=REMINDER_NOTIFICATION,
                    scheduled_for=fired_at,
                    dedupe_key=f"reminder:{reminder_id}:{fired_at.isoformat()}",
                    reminder_id=reminder_id,
                )
                queued += 1 if inserted else 0
            else:
                logger.warning("Reminder %s: no email for user %s; not queued", reminder_id, reminder.user_id)
                skipped += 1
            advance_reminder(reminder, now)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Reminder %s dispatch failed: %s", reminder_id, e)
            skipped += 1

    logger.info("Reminder run summary: queued=%s, skipped=%s, total=%s", queued, skipped, len(due))
    return {"processed": len(due), "queued": queued, "skipped": skipped}
