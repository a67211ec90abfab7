"""Streak widget: current / longest streak, consistency and next milestone from journal entries."""
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from noted.api.deps import current_user_id
from noted.db.session import get_db
from noted.services.streak_service import get_streak_stats

router = APIRouter()


@router.get("/streaks")
def get_streaks(
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    return get_streak_stats(db, user_id)
