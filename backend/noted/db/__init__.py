from noted.db.base import Base
from noted.db.session import SessionLocal, engine, get_db
from noted.db.tables import ALL_TABLE_NAMES

__all__ = ["get_db", "engine", "SessionLocal", "Base", "ALL_TABLE_NAMES"]
