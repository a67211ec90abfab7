"""
Custom reminders API. Caller identified by the X-User-Id header.

Service errors (RateLimitExceeded -> 429, ReminderValidationError -> 422,
ReminderNotFound -> 404) are mapped by the exception handler registered in main.
"""
import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from noted.api.deps import current_user_id
from noted.core.constants import REMINDER_ONCE
from noted.db.session import get_db
from noted.services import rate_limiter, reminder_service
from noted.services.reminder_service import reminder_to_dict

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateReminderBody(BaseModel):
    title: str
    description: str | None = None
    next_reminder_at: datetime
    reminder_type: str = Field(REMINDER_ONCE, description="once | daily | weekly | custom")


class UpdateReminderBody(BaseModel):
    title: str | None = None
    description: str | None = None
    next_reminder_at: datetime | None = None
    reminder_type: str | None = None
    is_active: bool | None = None


@router.get("/reminders")
def list_reminders(
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    rows = reminder_service.list_reminders(db, user_id)
    return {"reminders": [reminder_to_dict(r) for r in rows], "count": len(rows)}


@router.get("/reminders/rate-limit")
def get_rate_limit(
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    """Quota badge for the reminders page: created today / active vs. caps, and when the day resets."""
    return rate_limiter.get_status(db, user_id).as_dict()


@router.post("/reminders", status_code=201)
def create_reminder(
    body: CreateReminderBody,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    row = reminder_service.create_reminder(
        db,
        user_id,
        title=body.title,
        description=body.description,
        next_reminder_at=body.next_reminder_at,
        reminder_type=body.reminder_type,
    )
    return reminder_to_dict(row)


@router.patch("/reminders/{reminder_id}")
def update_reminder(
    reminder_id: int,
    body: UpdateReminderBody,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    """Partial update; only fields present in the body are changed."""
    row = reminder_service.update_reminder(db, user_id, reminder_id, body.model_dump(exclude_unset=True))
    return reminder_to_dict(row)


@router.post("/reminders/{reminder_id}/toggle")
def toggle_reminder(
    reminder_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    row = reminder_service.toggle_reminder(db, user_id, reminder_id)
    return reminder_to_dict(row)


@router.delete("/reminders/{reminder_id}")
def delete_reminder(
    reminder_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    reminder_service.delete_reminder(db, user_id, reminder_id)
    return {"ok": True, "id": reminder_id}
