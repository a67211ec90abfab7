"""
Email queue consumer: one invocation = fetch up to 50 due jobs, process them concurrently,
record each outcome independently, return a batch summary.

Per job:
  claim (pending -> processing, only if still pending)
  -> preference check (opt-out -> skipped, transport never called)
  -> streak/profile lookup -> render -> send
  -> sent | failed (exception message kept verbatim in error_message)

A job's exception never leaves its worker; only a failure to read the queue itself
(BatchFetchError) aborts an invocation. Jobs running longer than job_timeout_seconds are
recorded as failed and the batch stops waiting for them. Jobs that never got a worker
(every worker stuck on a timed-out job, or batch_timeout_seconds passed) are cancelled and
stay `pending` for the next invocation. Rows left in `processing` by a crashed invocation
are returned to `pending` after claim_ttl_seconds.
"""
import logging
import random
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from noted.config import settings
from noted.core.clock import as_utc, utcnow
from noted.core.constants import (
    DAILY_REMINDER,
    INACTIVE_USER,
    MAX_BATCH_SIZE,
    REMINDER_NOTIFICATION,
    RESULT_ALREADY_CLAIMED,
    RESULT_DEFERRED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_SENT,
    STATUS_SKIPPED,
    STREAK_MILESTONE,
    WEEKLY_SUMMARY,
)
from noted.core.errors import BatchFetchError, ContextLookupError, NotificationObsolete, PreferenceDisabled
from noted.core.streaks import days_since, inactivity_threshold
from noted.db.session import SessionLocal
from noted.models.custom_reminder import CustomReminder
from noted.models.journal_entry import JournalEntry
from noted.models.notification_job import NotificationJob
from noted.models.notification_preference import NotificationPreference
from noted.models.profile import Profile
from noted.models.streak_snapshot import StreakSnapshot
from noted.services.email_transport import transport_from_settings
from noted.services.templates import EmailContext, RenderedEmail, render_template

logger = logging.getLogger(__name__)

# How often the batch wakes up to check for timed-out jobs
_POLL_SECONDS = 0.25

# Per-type preference flag (on top of the email_reminders_enabled master switch)
_TYPE_FLAGS = {
    DAILY_REMINDER: ("daily_reminder", "User disabled daily reminders"),
    WEEKLY_SUMMARY: ("weekly_reminder", "User disabled weekly summaries"),
    STREAK_MILESTONE: ("milestone_notifications", "User disabled milestone notifications"),
    INACTIVE_USER: ("streak_notifications", "User disabled streak notifications"),
}


@dataclass(frozen=True)
class QueuedJob:
    """Detached snapshot of a notification_jobs row, safe to hand to worker threads."""
    id: int
    user_id: str
    email: str
    type: str
    scheduled_for: datetime
    reminder_id: int | None = None

    @classmethod
    def from_row(cls, row: NotificationJob) -> "QueuedJob":
        return cls(
            id=row.id,
            user_id=row.user_id,
            email=row.email,
            type=row.type,
            scheduled_for=as_utc(row.scheduled_for),
            reminder_id=row.reminder_id,
        )


@dataclass
class JobResult:
    id: int
    user_id: str
    email: str
    type: str
    status: str
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        out = {"id": self.id, "user_id": self.user_id, "email": self.email, "type": self.type, "status": self.status}
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class BatchSummary:
    """Counts cover jobs a worker actually picked up; deferred jobs only appear in results."""
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[JobResult] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: list[JobResult]) -> "BatchSummary":
        return cls(
            processed=sum(1 for r in results if r.status != RESULT_DEFERRED),
            successful=sum(1 for r in results if r.status == STATUS_SENT),
            failed=sum(1 for r in results if r.status == STATUS_FAILED),
            skipped=sum(1 for r in results if r.status == STATUS_SKIPPED),
            results=results,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": [r.as_dict() for r in self.results],
        }


def _error_text(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


def fetch_due_jobs(db: Session, now: datetime | None = None, limit: int = MAX_BATCH_SIZE) -> list[QueuedJob]:
    """Pending jobs with scheduled_for <= now, oldest first, at most 50. Raises BatchFetchError."""
    now = as_utc(now) if now else utcnow()
    limit = max(1, min(limit, MAX_BATCH_SIZE))
    try:
        rows = (
            db.query(NotificationJob)
            .filter(NotificationJob.status == STATUS_PENDING, NotificationJob.scheduled_for <= now)
            .order_by(NotificationJob.scheduled_for.asc(), NotificationJob.id.asc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        raise BatchFetchError(f"Could not read email queue: {e}") from e
    return [QueuedJob.from_row(r) for r in rows]


def release_stale_claims(db: Session, now: datetime | None = None, ttl_seconds: int | None = None) -> int:
    """Return rows stuck in `processing` (crashed invocation) to `pending`. Returns count released."""
    now = as_utc(now) if now else utcnow()
    ttl_seconds = settings.claim_ttl_seconds if ttl_seconds is None else ttl_seconds
    cutoff = now - timedelta(seconds=ttl_seconds)
    released = (
        db.query(NotificationJob)
        .filter(NotificationJob.status == STATUS_PROCESSING, NotificationJob.claimed_at < cutoff)
        .update({NotificationJob.status: STATUS_PENDING, NotificationJob.claimed_at: None}, synchronize_session=False)
    )
    db.commit()
    if released:
        logger.warning("Released %s stale email job claim(s) older than %ss", released, ttl_seconds)
    return released


def claim_job(db: Session, job_id: int, now: datetime) -> bool:
    """Atomic pending -> processing. False if another invocation got there first."""
    updated = (
        db.query(NotificationJob)
        .filter(NotificationJob.id == job_id, NotificationJob.status == STATUS_PENDING)
        .update({NotificationJob.status: STATUS_PROCESSING, NotificationJob.claimed_at: now}, synchronize_session=False)
    )
    db.commit()
    return updated == 1


def finish_job(db: Session, job_id: int, status: str, now: datetime, error: str | None = None) -> bool:
    """processing -> terminal status. Never touches a row that is already terminal."""
    values: dict = {NotificationJob.status: status, NotificationJob.error_message: error}
    if status == STATUS_SENT:
        values[NotificationJob.sent_at] = now
    updated = (
        db.query(NotificationJob)
        .filter(NotificationJob.id == job_id, NotificationJob.status == STATUS_PROCESSING)
        .update(values, synchronize_session=False)
    )
    db.commit()
    if updated != 1:
        logger.warning("Job %s: not in processing any more; %s outcome not recorded", job_id, status)
    return updated == 1


def opt_out_reason(pref: NotificationPreference | None, notification_type: str) -> str | None:
    """Why this user should not get this email, or None. Custom reminders are always delivered."""
    if notification_type == REMINDER_NOTIFICATION:
        return None
    if pref is None or not pref.email_reminders_enabled:
        return "User disabled reminders"
    frequency = (pref.email_frequency or "").lower()
    if frequency == "never":
        return "User set email frequency to never"
    if frequency == "weekly" and notification_type == DAILY_REMINDER:
        return "User chose weekly emails only"
    flag = _TYPE_FLAGS.get(notification_type)
    if flag and not getattr(pref, flag[0]):
        return flag[1]
    return None


class QueueConsumer:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        transport,
        *,
        app_url: str | None = None,
        seed: int | str | None = None,
        clock: Callable[[], datetime] = utcnow,
        max_workers: int | None = None,
        job_timeout_seconds: float | None = None,
        batch_timeout_seconds: float | None = None,
    ):
        self.session_factory = session_factory
        self.transport = transport
        self.app_url = app_url if app_url is not None else settings.app_url
        self.seed = seed
        self.clock = clock
        self.max_workers = max_workers or settings.email_max_workers
        self.job_timeout_seconds = (
            settings.email_job_timeout_seconds if job_timeout_seconds is None else job_timeout_seconds
        )
        self.batch_timeout_seconds = (
            settings.email_batch_timeout_seconds if batch_timeout_seconds is None else batch_timeout_seconds
        )

    def rng_for(self, job: QueuedJob) -> random.Random:
        # One generator per job so a seeded batch renders the same whatever the thread order
        if self.seed is None:
            return random.Random()
        return random.Random(f"{self.seed}:{job.id}")

    # --- per job ---

    def _days_inactive(self, db: Session, job: QueuedJob) -> int:
        try:
            last_at = (
                db.query(func.max(JournalEntry.created_at))
                .filter(JournalEntry.user_id == job.user_id)
                .scalar()
            )
        except SQLAlchemyError as e:
            raise ContextLookupError(f"Entry lookup failed: {e}") from e
        if last_at is None:
            raise ContextLookupError(f"No entries for user {job.user_id}")
        days = days_since(as_utc(last_at), as_utc(self.clock()))
        if inactivity_threshold(days) is None:
            raise NotificationObsolete("User wrote an entry after this email was queued")
        return days

    def build_email(self, db: Session, job: QueuedJob) -> RenderedEmail:
        """
        Preference check + context lookup + render.
        Raises PreferenceDisabled / NotificationObsolete / ContextLookupError.
        """
        try:
            pref = db.query(NotificationPreference).filter(NotificationPreference.user_id == job.user_id).first()
        except SQLAlchemyError as e:
            raise ContextLookupError(f"Preference lookup failed: {e}") from e
        reason = opt_out_reason(pref, job.type)
        if reason:
            raise PreferenceDisabled(reason)
        try:
            streak = db.query(StreakSnapshot).filter(StreakSnapshot.user_id == job.user_id).first()
            profile = db.query(Profile).filter(Profile.user_id == job.user_id).first()
            reminder = db.get(CustomReminder, job.reminder_id) if job.reminder_id is not None else None
        except SQLAlchemyError as e:
            raise ContextLookupError(f"Streak/profile lookup failed: {e}") from e
        if job.type == REMINDER_NOTIFICATION and reminder is None:
            raise ContextLookupError(f"Reminder {job.reminder_id} no longer exists")
        days_inactive = self._days_inactive(db, job) if job.type == INACTIVE_USER else 0
        ctx = EmailContext(
            display_name=profile.name if profile else None,
            current_streak=streak.current_streak if streak else 0,
            total_entries=streak.total_entries if streak else 0,
            app_url=self.app_url,
            reminder_title=reminder.title if reminder else None,
            reminder_description=reminder.description if reminder else None,
            reminder_at=job.scheduled_for if reminder else None,
            timezone=pref.timezone if pref else None,
            days_inactive=days_inactive,
        )
        return render_template(job.type, ctx, self.rng_for(job))

    def _result(self, job: QueuedJob, status: str, error: str | None = None) -> JobResult:
        return JobResult(id=job.id, user_id=job.user_id, email=job.email, type=job.type, status=status, error=error)

    def process_job(self, job: QueuedJob) -> JobResult:
        db = self.session_factory()
        try:
            if not claim_job(db, job.id, self.clock()):
                logger.info("Job %s already claimed by another invocation; skipping", job.id)
                return self._result(job, RESULT_ALREADY_CLAIMED)
            try:
                rendered = self.build_email(db, job)
                self.transport.send(job.email, rendered.subject, rendered.html)
            except (PreferenceDisabled, NotificationObsolete) as e:
                db.rollback()
                finish_job(db, job.id, STATUS_SKIPPED, self.clock(), str(e))
                logger.info("Job %s (%s) skipped for %s: %s", job.id, job.type, job.user_id, e)
                return self._result(job, STATUS_SKIPPED, str(e))
            except Exception as e:
                db.rollback()
                message = _error_text(e)
                logger.warning("Job %s (%s) to %s failed: %s", job.id, job.type, job.email, message, exc_info=True)
                finish_job(db, job.id, STATUS_FAILED, self.clock(), message)
                return self._result(job, STATUS_FAILED, message)
            finish_job(db, job.id, STATUS_SENT, self.clock())
            return self._result(job, STATUS_SENT)
        except SQLAlchemyError as e:
            # Claim or outcome write failed; a stale claim is released on a later run
            db.rollback()
            logger.exception("Job %s: could not record outcome: %s", job.id, e)
            return self._result(job, STATUS_FAILED, _error_text(e))
        finally:
            db.close()

    def _record_timeout(self, job: QueuedJob, message: str) -> JobResult:
        logger.error("Job %s (%s) to %s: %s", job.id, job.type, job.email, message)
        db = self.session_factory()
        try:
            finish_job(db, job.id, STATUS_FAILED, self.clock(), message)
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Job %s: could not record timeout: %s", job.id, e)
        finally:
            db.close()
        return self._result(job, STATUS_FAILED, message)

    # --- batch ---

    def process_batch(self, jobs: list[QueuedJob]) -> BatchSummary:
        """Process jobs concurrently; one job's failure or hang never affects the others."""
        if not jobs:
            return BatchSummary()
        started: dict[int, float] = {}

        def run(job: QueuedJob) -> JobResult:
            started[job.id] = time.monotonic()
            return self.process_job(job)

        workers = min(len(jobs), self.max_workers)
        deadline = time.monotonic() + self.batch_timeout_seconds
        results: dict[int, JobResult] = {}
        # Timed-out futures still running: each one keeps its worker thread busy
        abandoned: set = set()
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="email_job")
        try:
            future_to_job = {executor.submit(run, job): job for job in jobs}
            pending = set(future_to_job)
            while pending:
                done, pending = wait(pending, timeout=_POLL_SECONDS, return_when=FIRST_COMPLETED)
                for future in done:
                    job = future_to_job[future]
                    try:
                        results[job.id] = future.result()
                    except Exception as e:
                        logger.exception("Job %s worker raised: %s", job.id, e)
                        results[job.id] = self._result(job, STATUS_FAILED, _error_text(e))
                now = time.monotonic()
                past_deadline = now >= deadline
                for future in list(pending):
                    job = future_to_job[future]
                    t0 = started.get(job.id)
                    if t0 is None:
                        continue
                    if now - t0 > self.job_timeout_seconds:
                        message = f"Timed out after {self.job_timeout_seconds:g}s"
                    elif past_deadline:
                        message = f"Batch deadline of {self.batch_timeout_seconds:g}s reached"
                    else:
                        continue
                    pending.discard(future)
                    abandoned.add(future)
                    results[job.id] = self._record_timeout(job, message)
                abandoned = {f for f in abandoned if not f.done()}
                if pending and (past_deadline or len(abandoned) >= workers):
                    reason = (
                        "Batch deadline reached before a worker was free"
                        if past_deadline
                        else "Every worker is stuck on a timed-out job"
                    )
                    for future in list(pending):
                        # cancel() fails once a worker has started it; that one is timed normally
                        if future.cancel():
                            pending.discard(future)
                            job = future_to_job[future]
                            results[job.id] = self._result(job, RESULT_DEFERRED, f"{reason}; left pending")
                    deferred = sum(1 for r in results.values() if r.status == RESULT_DEFERRED)
                    logger.warning("Email batch: %s; %s job(s) left pending for the next run", reason, deferred)
        finally:
            # Do not block on hung workers; queued ones are cancelled
            executor.shutdown(wait=False, cancel_futures=True)
        return BatchSummary.from_results([results[job.id] for job in jobs])


def run_email_queue(
    session_factory: Callable[[], Session] | None = None,
    transport_factory: Callable[[], Any] | None = None,
    now: datetime | None = None,
    **consumer_kwargs,
) -> BatchSummary:
    """
    One consumer invocation. The transport is only opened when there is work and is
    always closed before returning. Raises BatchFetchError if the queue cannot be read.
    """
    session_factory = session_factory or SessionLocal
    transport_factory = transport_factory or transport_from_settings
    db = session_factory()
    try:
        try:
            release_stale_claims(db, now)
        except SQLAlchemyError as e:
            db.rollback()
            raise BatchFetchError(f"Could not read email queue: {e}") from e
        jobs = fetch_due_jobs(db, now, settings.email_batch_size)
    finally:
        db.close()
    if not jobs:
        logger.debug("Email queue: no due jobs")
        return BatchSummary()
    logger.info("Email queue: processing %s due job(s)", len(jobs))
    with transport_factory() as transport:
        summary = QueueConsumer(session_factory, transport, **consumer_kwargs).process_batch(jobs)
    logger.info(
        "Email queue done: processed=%s sent=%s failed=%s skipped=%s",
        summary.processed,
        summary.successful,
        summary.failed,
        summary.skipped,
    )
    return summary
