"""Journal entry (only the columns streaks need). Written by the diary UI; read-only here."""
from sqlalchemy import Column, Date, DateTime, Index, Integer, String
from sqlalchemy.sql import func

from noted.db.base import Base


class JournalEntry(Base):
    __tablename__ = "entries"
    __table_args__ = (Index("ix_entries_user_entry_date", "user_id", "entry_date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    entry_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
