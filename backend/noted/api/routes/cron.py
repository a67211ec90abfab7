"""
Trigger endpoints for external schedulers (the in-process APScheduler runs the same code).

POST /cron/process-email-queue   -> {success, processed, successful, failed, skipped, results}
POST /cron/dispatch-reminders    -> {success, processed, queued, skipped}
POST /cron/enqueue-notifications -> {success, daily_reminder, weekly_summary, streak_milestone, no_email}
POST /cron/detect-inactive-users -> {success, inactive_user, no_email, recently_sent}

A failure to read the queue returns 500 {success: false, error}.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from noted.api.deps import require_cron_secret
from noted.core.errors import BatchFetchError
from noted.db.session import SessionLocal, get_db
from noted.services.email_transport import transport_from_settings
from noted.services.job_scheduler import enqueue_due_notifications, enqueue_inactive_users
from noted.services.queue_consumer import run_email_queue
from noted.services.reminder_dispatch import dispatch_due_reminders

router = APIRouter(dependencies=[Depends(require_cron_secret)])
logger = logging.getLogger(__name__)


def get_session_factory():
    return SessionLocal


def get_transport_factory():
    return transport_from_settings


def _error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"success": False, "error": message})


@router.post("/cron/process-email-queue")
def process_email_queue(
    session_factory=Depends(get_session_factory),
    transport_factory=Depends(get_transport_factory),
) -> Any:
    try:
        summary = run_email_queue(session_factory=session_factory, transport_factory=transport_factory)
    except BatchFetchError as e:
        logger.error("process-email-queue: %s", e)
        return _error(str(e))
    return {"success": True, **summary.as_dict()}


@router.post("/cron/dispatch-reminders")
def dispatch_reminders(db: Session = Depends(get_db)) -> Any:
    try:
        result = dispatch_due_reminders(db)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("dispatch-reminders failed: %s", e)
        return _error(str(e))
    return {"success": True, **result}


@router.post("/cron/enqueue-notifications")
def enqueue_notifications(db: Session = Depends(get_db)) -> Any:
    try:
        counts = enqueue_due_notifications(db)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("enqueue-notifications failed: %s", e)
        return _error(str(e))
    return {"success": True, **counts}


@router.post("/cron/detect-inactive-users")
def detect_inactive_users(db: Session = Depends(get_db)) -> Any:
    try:
        counts = enqueue_inactive_users(db)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("detect-inactive-users failed: %s", e)
        return _error(str(e))
    return {"success": True, **counts}
