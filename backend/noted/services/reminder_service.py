"""
Custom reminder CRUD for the reminders UI. All operations are scoped to one user.

Creation and any inactive -> active transition go through reminder_quota so neither the
daily creation cap nor the active cap can be exceeded, even under concurrent requests.
"""
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from noted.core.clock import as_utc, utcnow
from noted.core.constants import (
    REMINDER_DESCRIPTION_MAX_LENGTH,
    REMINDER_TITLE_MAX_LENGTH,
    REMINDER_TYPES,
)
from noted.core.errors import ReminderNotFound, ReminderValidationError
from noted.models.custom_reminder import CustomReminder
from noted.services.rate_limiter import reminder_quota

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("title", "description", "next_reminder_at", "reminder_type", "is_active")


def _clean_title(title: str | None) -> str:
    title = (title or "").strip()
    if not title:
        raise ReminderValidationError("Title is required.", field="title")
    if len(title) > REMINDER_TITLE_MAX_LENGTH:
        raise ReminderValidationError(
            f"Title must be at most {REMINDER_TITLE_MAX_LENGTH} characters.", field="title"
        )
    return title


def _clean_description(description: str | None) -> str | None:
    description = (description or "").strip()
    if len(description) > REMINDER_DESCRIPTION_MAX_LENGTH:
        raise ReminderValidationError(
            f"Description must be at most {REMINDER_DESCRIPTION_MAX_LENGTH} characters.", field="description"
        )
    return description or None


def _clean_type(reminder_type: str | None) -> str:
    reminder_type = (reminder_type or "").strip().lower()
    if reminder_type not in REMINDER_TYPES:
        raise ReminderValidationError(
            f"Invalid reminder_type {reminder_type!r}. Use one of: {', '.join(REMINDER_TYPES)}.",
            field="reminder_type",
        )
    return reminder_type


def _clean_when(next_reminder_at: datetime | None) -> datetime:
    if next_reminder_at is None:
        raise ReminderValidationError("next_reminder_at is required.", field="next_reminder_at")
    return as_utc(next_reminder_at)


def reminder_to_dict(row: CustomReminder) -> dict[str, Any]:
    created_at = as_utc(row.created_at)
    return {
        "id": row.id,
        "title": row.title,
        "description": row.description,
        "next_reminder_at": as_utc(row.next_reminder_at).isoformat(),
        "reminder_type": row.reminder_type,
        "is_active": bool(row.is_active),
        "created_at": created_at.isoformat() if created_at else None,
    }


def _get_owned(db: Session, user_id: str, reminder_id: int) -> CustomReminder:
    row = (
        db.query(CustomReminder)
        .filter(CustomReminder.id == reminder_id, CustomReminder.user_id == user_id)
        .first()
    )
    if row is None:
        raise ReminderNotFound(f"Reminder {reminder_id} not found.")
    return row


def list_reminders(db: Session, user_id: str) -> list[CustomReminder]:
    return (
        db.query(CustomReminder)
        .filter(CustomReminder.user_id == user_id)
        .order_by(CustomReminder.next_reminder_at.asc(), CustomReminder.id.asc())
        .all()
    )


def create_reminder(
    db: Session,
    user_id: str,
    *,
    title: str,
    next_reminder_at: datetime | None,
    reminder_type: str = "once",
    description: str | None = None,
    now: datetime | None = None,
) -> CustomReminder:
    """Validate, check both quotas, insert. Raises ReminderValidationError / RateLimitExceeded."""
    now = as_utc(now) if now else utcnow()
    row = CustomReminder(
        user_id=user_id,
        title=_clean_title(title),
        description=_clean_description(description),
        next_reminder_at=_clean_when(next_reminder_at),
        reminder_type=_clean_type(reminder_type),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    with reminder_quota(db, user_id, creating=True, now=now):
        try:
            db.add(row)
            db.commit()
        except Exception:
            db.rollback()
            raise
    db.refresh(row)
    logger.info("Created reminder %s (%s) for %s", row.id, row.reminder_type, user_id)
    return row


def _set_active(db: Session, user_id: str, row: CustomReminder, now: datetime) -> None:
    """Reactivate under the active-reminder quota; commits."""
    with reminder_quota(db, user_id, creating=False, now=now):
        try:
            row.is_active = True
            row.updated_at = now
            db.commit()
        except Exception:
            db.rollback()
            raise


def update_reminder(
    db: Session,
    user_id: str,
    reminder_id: int,
    fields: dict[str, Any],
    *,
    now: datetime | None = None,
) -> CustomReminder:
    """Partial update. Only keys in fields are touched; is_active False -> True is quota-gated."""
    now = as_utc(now) if now else utcnow()
    unknown = set(fields) - set(_UPDATABLE_FIELDS)
    if unknown:
        raise ReminderValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}.")
    row = _get_owned(db, user_id, reminder_id)
    changes: dict[str, Any] = {}
    if "title" in fields:
        changes["title"] = _clean_title(fields["title"])
    if "description" in fields:
        changes["description"] = _clean_description(fields["description"])
    if "next_reminder_at" in fields:
        changes["next_reminder_at"] = _clean_when(fields["next_reminder_at"])
    if "reminder_type" in fields:
        changes["reminder_type"] = _clean_type(fields["reminder_type"])
    activate = fields.get("is_active") is True and not row.is_active
    if fields.get("is_active") is False:
        changes["is_active"] = False

    for key, value in changes.items():
        setattr(row, key, value)
    row.updated_at = now
    if activate:
        # Field changes ride along in the quota-gated transaction; a refusal rolls them back too
        _set_active(db, user_id, row, now)
    else:
        db.commit()
    db.refresh(row)
    return row


def toggle_reminder(db: Session, user_id: str, reminder_id: int, *, now: datetime | None = None) -> CustomReminder:
    now = as_utc(now) if now else utcnow()
    row = _get_owned(db, user_id, reminder_id)
    if row.is_active:
        row.is_active = False
        row.updated_at = now
        db.commit()
    else:
        _set_active(db, user_id, row, now)
    db.refresh(row)
    logger.info("Reminder %s for %s is now %s", reminder_id, user_id, "active" if row.is_active else "inactive")
    return row


def delete_reminder(db: Session, user_id: str, reminder_id: int) -> None:
    row = _get_owned(db, user_id, reminder_id)
    db.delete(row)
    db.commit()
    logger.info("Deleted reminder %s for %s", reminder_id, user_id)
