"""Notification pipeline tables: profiles, entries, user_streaks, notification_preferences,
custom_reminders, notification_jobs.

- notification_jobs: email queue. status pending -> processing (claim) -> sent | failed | skipped.
  (user_id, dedupe_key) unique so producers can re-run without double-queueing.
- custom_reminders: user-defined reminders; (user_id, created_at) backs the daily quota count.
- profiles / entries / user_streaks: written by the diary app, read here.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ALL_DAYS = '["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]'


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(256), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
    )
    op.create_index("ix_profiles_user_id", "profiles", ["user_id"], unique=True)

    op.create_table(
        "entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_entries_user_entry_date", "entries", ["user_id", "entry_date"])

    op.create_table(
        "user_streaks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_entries", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_user_streaks_user_id", "user_streaks", ["user_id"], unique=True)

    op.create_table(
        "notification_preferences",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("email_reminders_enabled", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("email_frequency", sa.String(16), nullable=False, server_default="daily"),
        sa.Column("daily_reminder", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("reminder_time", sa.String(5), nullable=False, server_default="20:00"),
        sa.Column("reminder_days", JSONB, nullable=False, server_default=_ALL_DAYS),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("weekly_reminder", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("milestone_notifications", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("streak_notifications", sa.Boolean(), nullable=False, server_default="true"),
    )
    op.create_index("ix_notification_preferences_user_id", "notification_preferences", ["user_id"], unique=True)

    op.create_table(
        "custom_reminders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("next_reminder_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reminder_type", sa.String(16), nullable=False, server_default="once"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_custom_reminders_user_id", "custom_reminders", ["user_id"])
    op.create_index("ix_custom_reminders_user_created_at", "custom_reminders", ["user_id", "created_at"])
    op.create_index("ix_custom_reminders_active_next", "custom_reminders", ["is_active", "next_reminder_at"])

    op.create_table(
        "notification_jobs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "reminder_id",
            sa.Integer(),
            sa.ForeignKey("custom_reminders.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("dedupe_key", sa.String(128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "dedupe_key", name="uq_notification_jobs_user_dedupe"),
    )
    op.create_index("ix_notification_jobs_user_id", "notification_jobs", ["user_id"])
    op.create_index("ix_notification_jobs_status_scheduled_for", "notification_jobs", ["status", "scheduled_for"])


def downgrade() -> None:
    op.drop_index("ix_notification_jobs_status_scheduled_for", table_name="notification_jobs")
    op.drop_index("ix_notification_jobs_user_id", table_name="notification_jobs")
    op.drop_table("notification_jobs")
    op.drop_index("ix_custom_reminders_active_next", table_name="custom_reminders")
    op.drop_index("ix_custom_reminders_user_created_at", table_name="custom_reminders")
    op.drop_index("ix_custom_reminders_user_id", table_name="custom_reminders")
    op.drop_table("custom_reminders")
    op.drop_index("ix_notification_preferences_user_id", table_name="notification_preferences")
    op.drop_table("notification_preferences")
    op.drop_index("ix_user_streaks_user_id", table_name="user_streaks")
    op.drop_table("user_streaks")
    op.drop_index("ix_entries_user_entry_date", table_name="entries")
    op.drop_table("entries")
    op.drop_index("ix_profiles_user_id", table_name="profiles")
    op.drop_table("profiles")
