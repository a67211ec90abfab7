"""Queued single-recipient email job.

Produced by the job scheduler / reminder dispatch (or any external producer), consumed by
the email queue consumer. status: pending -> processing (claimed) -> sent | failed | skipped.
Terminal rows are never updated again and never deleted (audit trail).
dedupe_key: producer-chosen key; (user_id, dedupe_key) is unique so producers can insert idempotently.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from noted.db.base import Base


class NotificationJob(Base):
    __tablename__ = "notification_jobs"
    __table_args__ = (
        UniqueConstraint("user_id", "dedupe_key", name="uq_notification_jobs_user_dedupe"),
        Index("ix_notification_jobs_status_scheduled_for", "status", "scheduled_for"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    email = Column(String(320), nullable=False)
    type = Column(String(32), nullable=False)  # daily_reminder | weekly_summary | streak_milestone | reminder_notification
    status = Column(String(16), nullable=False, server_default="pending")
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    reminder_id = Column(Integer, ForeignKey("custom_reminders.id", ondelete="SET NULL"), nullable=True)
    dedupe_key = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
