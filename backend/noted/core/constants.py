"""
Centralized constants for the notification pipeline (Encapsulate What Changes).

Change job IDs, statuses or type names here instead of scattering literals across
services, routes and migrations.
"""

# Scheduler job IDs (must match ids used in main.py add_job)
EMAIL_QUEUE_JOB_ID = "process_email_queue"
REMINDER_DISPATCH_JOB_ID = "dispatch_custom_reminders"
ENQUEUE_NOTIFICATIONS_JOB_ID = "enqueue_notifications"
INACTIVE_USERS_JOB_ID = "detect_inactive_users"

# notification_jobs.type
DAILY_REMINDER = "daily_reminder"
WEEKLY_SUMMARY = "weekly_summary"
STREAK_MILESTONE = "streak_milestone"
REMINDER_NOTIFICATION = "reminder_notification"
INACTIVE_USER = "inactive_user"
NOTIFICATION_TYPES = (DAILY_REMINDER, WEEKLY_SUMMARY, STREAK_MILESTONE, REMINDER_NOTIFICATION, INACTIVE_USER)

# notification_jobs.status: pending -> processing (claimed) -> sent | failed | skipped
STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"
JOB_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_SENT, STATUS_FAILED, STATUS_SKIPPED)

# Result status for a job another invocation claimed first (not stored; only in batch results)
RESULT_ALREADY_CLAIMED = "already_claimed"
# Job never started before the batch gave up on it; row is still pending
RESULT_DEFERRED = "deferred"

# Hard cap per consumer invocation
MAX_BATCH_SIZE = 50

# custom_reminders.reminder_type
REMINDER_ONCE = "once"
REMINDER_DAILY = "daily"
REMINDER_WEEKLY = "weekly"
REMINDER_CUSTOM = "custom"
REMINDER_TYPES = (REMINDER_ONCE, REMINDER_DAILY, REMINDER_WEEKLY, REMINDER_CUSTOM)

REMINDER_TITLE_MAX_LENGTH = 200
REMINDER_DESCRIPTION_MAX_LENGTH = 2000

# notification_preferences
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
DEFAULT_REMINDER_TIME = "20:00"
DEFAULT_TIMEZONE = "UTC"
# Weekly summaries go out on this weekday (datetime.weekday(): Monday=0)
WEEKLY_SUMMARY_WEEKDAY = 6

# Fallback greeting when a profile has no name
DEFAULT_DISPLAY_NAME = "there"

# Inactive-user emails: at most one per user in this window, whatever the threshold
INACTIVE_RESEND_GUARD_DAYS = 2
