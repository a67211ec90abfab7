"""User profile: display name and address for emails. Read-only here."""
from sqlalchemy import Column, Integer, String

from noted.db.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(256), nullable=True)
    email = Column(String(320), nullable=True)
