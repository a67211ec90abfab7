"""
Operator view of the email queue: recent notification_jobs, newest first.
Optional filters: ?status= (pending, processing, sent, failed, skipped), ?type= and ?user_id=.
"""
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from noted.api.deps import require_cron_secret
from noted.core.clock import as_utc
from noted.core.constants import JOB_STATUSES, NOTIFICATION_TYPES
from noted.db.session import get_db
from noted.models.notification_job import NotificationJob

router = APIRouter()


def _iso(value) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def job_to_dict(row: NotificationJob) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "email": row.email,
        "type": row.type,
        "status": row.status,
        "scheduled_for": _iso(row.scheduled_for),
        "claimed_at": _iso(row.claimed_at),
        "sent_at": _iso(row.sent_at),
        "error_message": row.error_message,
        "reminder_id": row.reminder_id,
        "dedupe_key": row.dedupe_key,
        "created_at": _iso(row.created_at),
    }


@router.get("/notifications/jobs", dependencies=[Depends(require_cron_secret)])
def list_jobs(
    db: Session = Depends(get_db),
    status: str | None = Query(None),
    type: str | None = Query(None),
    user_id: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
) -> dict[str, Any]:
    q = db.query(NotificationJob)
    if status:
        if status not in JOB_STATUSES:
            raise HTTPException(status_code=422, detail=f"Unknown status {status!r}. Use one of: {', '.join(JOB_STATUSES)}")
        q = q.filter(NotificationJob.status == status)
    if type:
        if type not in NOTIFICATION_TYPES:
            raise HTTPException(status_code=422, detail=f"Unknown type {type!r}. Use one of: {', '.join(NOTIFICATION_TYPES)}")
        q = q.filter(NotificationJob.type == type)
    if user_id:
        q = q.filter(NotificationJob.user_id == user_id.strip())
    rows = q.order_by(NotificationJob.created_at.desc(), NotificationJob.id.desc()).limit(limit).all()
    return {"jobs": [job_to_dict(r) for r in rows], "count": len(rows)}
