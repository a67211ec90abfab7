"""Per-user streak counters, maintained by entry-lifecycle logic outside this service."""
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from noted.db.base import Base


class StreakSnapshot(Base):
    __tablename__ = "user_streaks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    current_streak = Column(Integer, nullable=False, server_default="0")
    longest_streak = Column(Integer, nullable=False, server_default="0")
    total_entries = Column(Integer, nullable=False, server_default="0")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
