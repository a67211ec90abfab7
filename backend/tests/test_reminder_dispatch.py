"""Tests for dispatch_due_reminders: queue the email, then deactivate or advance the reminder."""
from datetime import timedelta

from noted.core.clock import as_utc
from noted.core.constants import REMINDER_NOTIFICATION, STATUS_SENT
from noted.models import CustomReminder, NotificationJob
from noted.services.queue_consumer import run_email_queue
from noted.services.reminder_dispatch import dispatch_due_reminders
from fakes import NOW, FakeTransport, add_reminder, add_user


def _reminder(db, rid) -> CustomReminder:
    db.expire_all()
    return db.get(CustomReminder, rid)


def test_once_reminder_is_queued_and_deactivated(db):
    add_user(db, "ada")
    fire_at = NOW - timedelta(minutes=1)
    rid = add_reminder(db, "ada", next_reminder_at=fire_at)

    result = dispatch_due_reminders(db, NOW)

    assert result == {"processed": 1, "queued": 1, "skipped": 0}
    (job,) = db.query(NotificationJob).all()
    assert job.type == REMINDER_NOTIFICATION
    assert job.reminder_id == rid
    assert job.email == "ada@example.com"
    assert job.dedupe_key == f"reminder:{rid}:{fire_at.isoformat()}"
    assert _reminder(db, rid).is_active is False


def test_custom_reminder_is_deactivated_after_firing(db):
    add_user(db, "ada")
    rid = add_reminder(db, "ada", reminder_type="custom")
    dispatch_due_reminders(db, NOW)
    assert _reminder(db, rid).is_active is False


def test_daily_and_weekly_reminders_advance_past_now(db):
    add_user(db, "ada")
    daily = add_reminder(db, "ada", reminder_type="daily", next_reminder_at=NOW - timedelta(hours=1))
    weekly = add_reminder(db, "ada", reminder_type="weekly", next_reminder_at=NOW - timedelta(days=15))

    dispatch_due_reminders(db, NOW)

    daily_row = _reminder(db, daily)
    assert daily_row.is_active is True
    assert as_utc(daily_row.next_reminder_at) == NOW + timedelta(hours=23)
    weekly_row = _reminder(db, weekly)
    assert as_utc(weekly_row.next_reminder_at) == NOW + timedelta(days=6)
    # One email per firing, not one per missed occurrence
    assert db.query(NotificationJob).count() == 2


def test_future_and_inactive_reminders_are_ignored(db):
    add_user(db, "ada")
    add_reminder(db, "ada", next_reminder_at=NOW + timedelta(minutes=1))
    add_reminder(db, "ada", is_active=False)
    assert dispatch_due_reminders(db, NOW) == {"processed": 0, "queued": 0, "skipped": 0}
    assert db.query(NotificationJob).count() == 0


def test_reminder_without_recipient_is_skipped_but_still_moves_on(db):
    add_user(db, "ada", email="")
    rid = add_reminder(db, "ada")
    assert dispatch_due_reminders(db, NOW) == {"processed": 1, "queued": 0, "skipped": 1}
    assert db.query(NotificationJob).count() == 0
    assert _reminder(db, rid).is_active is False


def test_dispatched_reminder_is_delivered_by_the_queue(db, session_factory):
    add_user(db, "ada", email_reminders_enabled=False)
    rid = add_reminder(db, "ada", title="Water the plants")
    dispatch_due_reminders(db, NOW)

    transport = FakeTransport()
    summary = run_email_queue(
        session_factory=session_factory,
        transport_factory=lambda: transport,
        now=NOW,
        clock=lambda: NOW,
        seed=0,
        max_workers=2,
    )

    assert summary.successful == 1
    assert transport.sent[0][1] == "🔔 Reminder: Water the plants"
    job = db.query(NotificationJob).filter(NotificationJob.reminder_id == rid).one()
    assert job.status == STATUS_SENT


def test_scheduler_tick_runs_dispatch_in_its_own_session(db, session_factory):
    from noted.scheduler.reminder_dispatch_job import run_reminder_dispatch_job

    add_user(db, "ada")
    rid = add_reminder(db, "ada")
    run_reminder_dispatch_job()
    assert _reminder(db, rid).is_active is False
    assert db.query(NotificationJob).filter(NotificationJob.reminder_id == rid).count() == 1
