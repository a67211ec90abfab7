"""
Single source of truth for database tables that exist after migrations.

Tables owned by collaborators (entries, profiles, user_streaks, notification_preferences)
are read here but written elsewhere; keep them listed so alembic/env.py can verify models.
"""
ALL_TABLE_NAMES = (
    "custom_reminders",
    "entries",
    "notification_jobs",
    "notification_preferences",
    "profiles",
    "user_streaks",
)
