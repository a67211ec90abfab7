"""
Every minute: fire due custom reminders, then enqueue daily / weekly / milestone emails
from notification preferences. Both steps only insert notification_jobs rows; the email
queue job does the sending. Hourly: queue re-engagement emails for inactive users.
"""
import logging

from noted.db.session import SessionLocal
from noted.services.job_scheduler import enqueue_due_notifications, enqueue_inactive_users
from noted.services.reminder_dispatch import dispatch_due_reminders

logger = logging.getLogger(__name__)


def run_reminder_dispatch_job() -> None:
    db = SessionLocal()
    try:
        dispatch_due_reminders(db)
    except Exception as e:
        logger.exception("Reminder dispatch job failed: %s", e)
        db.rollback()
    finally:
        db.close()


def run_enqueue_notifications_job() -> None:
    db = SessionLocal()
    try:
        enqueue_due_notifications(db)
    except Exception as e:
        logger.exception("Enqueue notifications job failed: %s", e)
        db.rollback()
    finally:
        db.close()


def run_detect_inactive_users_job() -> None:
    db = SessionLocal()
    try:
        enqueue_inactive_users(db)
    except Exception as e:
        logger.exception("Inactive users job failed: %s", e)
        db.rollback()
    finally:
        db.close()
