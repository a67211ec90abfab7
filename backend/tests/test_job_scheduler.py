"""Tests for enqueue_due_notifications: per-user local time, weekday filter, idempotent dedupe keys."""
from datetime import datetime, timedelta, timezone

from noted.core.constants import DAILY_REMINDER, INACTIVE_USER, STREAK_MILESTONE, WEEKLY_SUMMARY
from noted.core.clock import as_utc
from noted.models import NotificationJob
from noted.services.job_scheduler import enqueue_due_notifications, enqueue_inactive_users, parse_reminder_time
from fakes import NOW, add_entries, add_user

# NOW is Friday 2024-03-15 12:00 UTC
SUNDAY = datetime(2024, 3, 17, 12, 0, tzinfo=timezone.utc)


def _run_ending(when, length):
    return [(when - timedelta(days=i)).date() for i in range(length)]


def _jobs(db, user_id=None):
    q = db.query(NotificationJob)
    if user_id:
        q = q.filter(NotificationJob.user_id == user_id)
    return q.order_by(NotificationJob.id).all()


def test_daily_reminder_enqueued_once_reminder_time_passes(db):
    add_user(db, "ada", reminder_time="09:00")
    counts = enqueue_due_notifications(db, NOW)
    assert counts[DAILY_REMINDER] == 1
    (job,) = _jobs(db)
    assert job.type == DAILY_REMINDER
    assert job.email == "ada@example.com"
    assert job.dedupe_key == "daily_reminder:2024-03-15"
    assert as_utc(job.scheduled_for) == NOW.replace(hour=9)


def test_rerunning_the_scan_does_not_double_queue(db):
    add_user(db, "ada", reminder_time="09:00", streak=7)
    first = enqueue_due_notifications(db, NOW)
    second = enqueue_due_notifications(db, NOW + timedelta(minutes=1))
    assert first[DAILY_REMINDER] == 1 and first[STREAK_MILESTONE] == 1
    assert second[DAILY_REMINDER] == 0 and second[STREAK_MILESTONE] == 0
    assert len(_jobs(db)) == 2


def test_not_due_before_reminder_time(db):
    add_user(db, "ada", reminder_time="20:00")
    assert enqueue_due_notifications(db, NOW)[DAILY_REMINDER] == 0


def test_reminder_time_is_in_user_timezone(db):
    add_user(db, "tokyo", reminder_time="20:00", timezone="Asia/Tokyo")  # 21:00 local
    add_user(db, "la", reminder_time="08:00", timezone="America/Los_Angeles")  # 05:00 local
    enqueue_due_notifications(db, NOW)
    (job,) = _jobs(db)
    assert job.user_id == "tokyo"
    assert as_utc(job.scheduled_for) == datetime(2024, 3, 15, 11, 0, tzinfo=timezone.utc)


def test_local_date_drives_the_dedupe_key(db):
    # 12:00 UTC Friday is already Saturday morning in Kiritimati (UTC+14)
    add_user(db, "kiri", reminder_time="00:30", timezone="Pacific/Kiritimati")
    enqueue_due_notifications(db, NOW)
    assert _jobs(db)[0].dedupe_key == "daily_reminder:2024-03-16"


def test_unknown_timezone_falls_back_to_utc(db):
    add_user(db, "ada", reminder_time="09:00", timezone="Nowhere/Special")
    assert enqueue_due_notifications(db, NOW)[DAILY_REMINDER] == 1


def test_weekday_filter_and_daily_flags(db):
    add_user(db, "weekends", reminder_time="09:00", reminder_days=["saturday", "sunday"])
    add_user(db, "nodaily", reminder_time="09:00", daily_reminder=False)
    add_user(db, "weekly", reminder_time="09:00", email_frequency="weekly")
    add_user(db, "never", reminder_time="09:00", email_frequency="never", streak=7)
    add_user(db, "off", reminder_time="09:00", email_reminders_enabled=False)
    assert sum(enqueue_due_notifications(db, NOW).values()) == 0
    assert _jobs(db) == []


def test_weekly_summary_on_sunday(db):
    add_user(db, "ada", reminder_time="09:00")
    add_user(db, "weekly", reminder_time="09:00", email_frequency="weekly")
    add_user(db, "noweekly", reminder_time="09:00", weekly_reminder=False)
    counts = enqueue_due_notifications(db, SUNDAY)
    assert counts[WEEKLY_SUMMARY] == 2
    assert counts[DAILY_REMINDER] == 2
    weekly = [j for j in _jobs(db) if j.type == WEEKLY_SUMMARY]
    assert {j.user_id for j in weekly} == {"ada", "weekly"}
    assert {j.dedupe_key for j in weekly} == {"weekly_summary:2024-W11"}


def test_milestone_only_for_configured_streaks(db):
    add_user(db, "seven", reminder_time="23:00", streak=7)
    add_entries(db, "seven", _run_ending(NOW, 7))
    add_user(db, "eight", reminder_time="23:00", streak=8)
    add_user(db, "muted", reminder_time="23:00", streak=30, milestone_notifications=False)
    enqueue_due_notifications(db, NOW)
    (job,) = _jobs(db)
    assert job.user_id == "seven"
    assert job.type == STREAK_MILESTONE
    assert job.dedupe_key == "streak_milestone:7:2024-03-09"


def test_users_without_email_are_counted_and_skipped(db):
    add_user(db, "ghost", email="", reminder_time="09:00")
    counts = enqueue_due_notifications(db, NOW)
    assert counts["no_email"] == 1
    assert _jobs(db) == []


def test_parse_reminder_time():
    assert parse_reminder_time("07:45").hour == 7
    assert parse_reminder_time("07:45:00").minute == 45
    assert parse_reminder_time("late").hour == 20
    assert parse_reminder_time(None).hour == 20


def test_milestone_is_sent_once_per_streak_run(db):
    # Snapshot stays at 7 while the user stops writing
    add_user(db, "ada", reminder_time="23:00", streak=7)
    add_entries(db, "ada", _run_ending(NOW, 7))
    for day in range(4):
        enqueue_due_notifications(db, NOW + timedelta(days=day))
    milestones = [j for j in _jobs(db) if j.type == STREAK_MILESTONE]
    assert len(milestones) == 1


def test_milestone_again_after_a_new_run_reaches_it(db):
    add_user(db, "ada", reminder_time="23:00", streak=7)
    add_entries(db, "ada", _run_ending(NOW - timedelta(days=30), 7))
    enqueue_due_notifications(db, NOW - timedelta(days=30))
    add_entries(db, "ada", _run_ending(NOW, 7))
    enqueue_due_notifications(db, NOW)
    keys = [j.dedupe_key for j in _jobs(db) if j.type == STREAK_MILESTONE]
    assert keys == ["streak_milestone:7:2024-02-08", "streak_milestone:7:2024-03-09"]


def test_milestone_without_entries_is_keyed_by_the_snapshot(db):
    add_user(db, "ada", reminder_time="23:00", streak=14)
    enqueue_due_notifications(db, NOW)
    enqueue_due_notifications(db, NOW + timedelta(days=1))
    assert len([j for j in _jobs(db) if j.type == STREAK_MILESTONE]) == 1


# --- inactive users ---


def _wrote_days_ago(db, user_id, days):
    add_entries(db, user_id, [(NOW - timedelta(days=days)).date()])


def test_inactive_user_is_queued_at_the_first_threshold(db):
    add_user(db, "ada")
    _wrote_days_ago(db, "ada", 3)
    add_user(db, "busy")
    _wrote_days_ago(db, "busy", 2)

    counts = enqueue_inactive_users(db, NOW)

    assert counts[INACTIVE_USER] == 1
    (job,) = _jobs(db)
    assert job.user_id == "ada"
    assert job.type == INACTIVE_USER
    assert job.dedupe_key == "inactive_user:3:2024-03-12"


def test_inactive_user_gets_one_email_per_threshold(db):
    add_user(db, "ada")
    _wrote_days_ago(db, "ada", 3)
    enqueue_inactive_users(db, NOW)  # 3 days
    enqueue_inactive_users(db, NOW + timedelta(days=1))  # 4 days, same threshold
    enqueue_inactive_users(db, NOW + timedelta(days=4))  # 7 days
    keys = [j.dedupe_key for j in _jobs(db)]
    assert keys == ["inactive_user:3:2024-03-12", "inactive_user:7:2024-03-12"]


def test_inactive_user_resend_guard(db):
    add_user(db, "ada")
    _wrote_days_ago(db, "ada", 6)
    enqueue_inactive_users(db, NOW)  # 6 days: gentle reminder
    guarded = enqueue_inactive_users(db, NOW + timedelta(days=1))  # crosses 7, but only a day later
    assert guarded["recently_sent"] == 1
    assert guarded[INACTIVE_USER] == 0
    assert enqueue_inactive_users(db, NOW + timedelta(days=3))[INACTIVE_USER] == 1
    assert [j.dedupe_key for j in _jobs(db)] == ["inactive_user:3:2024-03-09", "inactive_user:7:2024-03-09"]


def test_inactive_scan_respects_preferences(db):
    for user_id, pref in [
        ("off", {"email_reminders_enabled": False}),
        ("never", {"email_frequency": "never"}),
        ("nostreak", {"streak_notifications": False}),
    ]:
        add_user(db, user_id, **pref)
        _wrote_days_ago(db, user_id, 10)
    add_user(db, "noprefs", with_prefs=False)
    _wrote_days_ago(db, "noprefs", 10)
    add_user(db, "ghost", email="")
    _wrote_days_ago(db, "ghost", 10)
    add_user(db, "neverwrote")

    counts = enqueue_inactive_users(db, NOW)

    assert counts == {INACTIVE_USER: 0, "no_email": 1, "recently_sent": 0}
    assert _jobs(db) == []
