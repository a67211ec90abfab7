"""
FastAPI app entrypoint.

Reminders + streak API for the diary UI, cron trigger endpoints, and the in-process
scheduler that enqueues and sends notification emails.
"""
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from noted.api.routes import cron, notifications, reminders, streaks
from noted.config import settings
from noted.core.constants import (
    EMAIL_QUEUE_JOB_ID,
    ENQUEUE_NOTIFICATIONS_JOB_ID,
    INACTIVE_USERS_JOB_ID,
    REMINDER_DISPATCH_JOB_ID,
)
from noted.core.errors import NotedError, error_to_http
from noted.scheduler.email_queue_job import run_email_queue_job
from noted.scheduler.reminder_dispatch_job import (
    run_detect_inactive_users_job,
    run_enqueue_notifications_job,
    run_reminder_dispatch_job,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.scheduler_enabled:
        _scheduler.add_job(
            run_reminder_dispatch_job,
            "interval",
            seconds=settings.reminder_dispatch_interval_seconds,
            id=REMINDER_DISPATCH_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        _scheduler.add_job(
            run_enqueue_notifications_job,
            "interval",
            seconds=settings.reminder_dispatch_interval_seconds,
            id=ENQUEUE_NOTIFICATIONS_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        _scheduler.add_job(
            run_email_queue_job,
            "interval",
            seconds=settings.email_queue_interval_seconds,
            id=EMAIL_QUEUE_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        _scheduler.add_job(
            run_detect_inactive_users_job,
            "interval",
            seconds=settings.inactive_scan_interval_seconds,
            id=INACTIVE_USERS_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        _scheduler.start()
        app.state.scheduler = _scheduler
        logger.info(
            "Scheduler started: email queue every %ss, reminders every %ss, inactive scan every %ss",
            settings.email_queue_interval_seconds,
            settings.reminder_dispatch_interval_seconds,
            settings.inactive_scan_interval_seconds,
        )
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false); use POST /cron/* to trigger runs")
    yield
    if _scheduler.running:
        _scheduler.shutdown(wait=False)


app = FastAPI(title="Noted Notifications", version="0.1.0", lifespan=lifespan)

# CORS: dev origins + optional CORS_ORIGINS env (comma-separated) for the deployed frontend
_cors_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_cors_extra = os.getenv("CORS_ORIGINS", "")
if _cors_extra:
    _cors_origins.extend(o.strip() for o in _cors_extra.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotedError)
async def noted_error_handler(request: Request, exc: NotedError) -> JSONResponse:
    http_exc = error_to_http(exc)
    if http_exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


app.include_router(reminders.router, tags=["reminders"])
app.include_router(streaks.router, tags=["streaks"])
app.include_router(notifications.router, tags=["notifications"])
app.include_router(cron.router, tags=["cron"])


@app.get("/", include_in_schema=False)
def root():
    """Root: point to API docs and health."""
    return {"message": "Noted notifications API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
