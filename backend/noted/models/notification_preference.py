"""User notification preferences. Owned by the settings UI; read-only here.

email_reminders_enabled is the master switch for every email this service sends.
reminder_days: JSON list of weekday names ('monday', ...); reminder_time: 'HH:MM' in timezone.
"""
from sqlalchemy import JSON, Boolean, Column, Integer, String
from sqlalchemy.dialects.postgresql import JSONB

from noted.core.constants import DEFAULT_REMINDER_TIME, DEFAULT_TIMEZONE, WEEKDAYS
from noted.db.base import Base


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    email_reminders_enabled = Column(Boolean, nullable=False, default=False)
    email_frequency = Column(String(16), nullable=False, default="daily")  # daily | weekly | never
    daily_reminder = Column(Boolean, nullable=False, default=True)
    reminder_time = Column(String(5), nullable=False, default=DEFAULT_REMINDER_TIME)
    reminder_days = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=lambda: list(WEEKDAYS))
    timezone = Column(String(64), nullable=False, default=DEFAULT_TIMEZONE)
    weekly_reminder = Column(Boolean, nullable=False, default=True)
    milestone_notifications = Column(Boolean, nullable=False, default=True)
    streak_notifications = Column(Boolean, nullable=False, default=True)
