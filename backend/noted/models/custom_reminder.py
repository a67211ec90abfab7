"""User-defined reminder. Creation and reactivation are gated by the reminder rate limiter.

reminder_type: once | daily | weekly | custom. Reminder dispatch deactivates once/custom
reminders after they fire and advances daily/weekly ones past now.
"""
from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.sql import func

from noted.db.base import Base


class CustomReminder(Base):
    __tablename__ = "custom_reminders"
    __table_args__ = (
        Index("ix_custom_reminders_user_created_at", "user_id", "created_at"),
        Index("ix_custom_reminders_active_next", "is_active", "next_reminder_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    next_reminder_at = Column(DateTime(timezone=True), nullable=False)
    reminder_type = Column(String(16), nullable=False, server_default="once")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
