"""
Error taxonomy for the notification pipeline and reminder API.

Per-job errors (PreferenceDisabled, ContextLookupError, DeliveryError) are caught at the
job boundary and recorded on the row. RateLimitExceeded / validation errors surface to the
UI through error_to_http. BatchFetchError is the only error that aborts a consumer run.
"""
from __future__ import annotations

from typing import Any, Callable

from fastapi import HTTPException

# ---------------------------------------------------------------------------
# Constants: status codes
# ---------------------------------------------------------------------------

STATUS_NOT_FOUND = 404
STATUS_UNPROCESSABLE = 422
STATUS_TOO_MANY_REQUESTS = 429
STATUS_INTERNAL_ERROR = 500


class NotedError(Exception):
    """Base class for errors raised by this service."""


class PreferenceDisabled(NotedError):
    """User opted out of this kind of email. Recorded as status=skipped, not failed."""


class NotificationObsolete(NotedError):
    """The reason to send went away between enqueue and delivery. Recorded as status=skipped."""


class ContextLookupError(NotedError):
    """Preference / profile / streak lookup failed for a job."""


class DeliveryError(NotedError):
    """SMTP connection, authentication or send failure. Message is kept verbatim."""


class BatchFetchError(NotedError):
    """Reading the queue itself failed; nothing was processed."""


class ReminderValidationError(NotedError):
    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ReminderNotFound(NotedError):
    pass


class RateLimitExceeded(NotedError):
    """
    Reminder creation/reactivation refused. limit is "daily" or "active";
    status is the RateLimitStatus computed inside the enforcing transaction.
    """

    def __init__(self, limit: str, status: Any):
        self.limit = limit
        self.status = status
        if limit == "daily":
            msg = (
                f"Daily reminder limit reached ({status.reminders_created_today}/"
                f"{status.max_reminders_per_day}). Try again after {status.reset_at.isoformat()}."
            )
        else:
            msg = (
                f"Active reminder limit reached ({status.active_reminders}/"
                f"{status.max_active_reminders}). Deactivate or delete a reminder first."
            )
        super().__init__(msg)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "rate_limit_exceeded",
            "limit": self.limit,
            "message": str(self),
            "status": self.status.as_dict(),
        }


# ---------------------------------------------------------------------------
# Error rules: (exception type, status_code, detail builder)
# Add new rules here instead of scattering checks in routes. First match wins.
# ---------------------------------------------------------------------------

def _message_detail(exc: Exception) -> Any:
    return str(exc)


def _validation_detail(exc: Exception) -> Any:
    return {"error": "validation_error", "field": getattr(exc, "field", None), "message": str(exc)}


def _rate_limit_detail(exc: Exception) -> Any:
    return exc.to_dict()


ERROR_RULES: list[tuple[type[Exception], int, Callable[[Exception], Any]]] = [
    (RateLimitExceeded, STATUS_TOO_MANY_REQUESTS, _rate_limit_detail),
    (ReminderValidationError, STATUS_UNPROCESSABLE, _validation_detail),
    (ReminderNotFound, STATUS_NOT_FOUND, _message_detail),
]


def error_to_http(exc: Exception) -> HTTPException:
    """
    Map a service exception into an HTTPException.
    Uses ERROR_RULES for known error types; otherwise returns 500 with the exception message.
    """
    for exc_type, status_code, detail in ERROR_RULES:
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail=detail(exc))
    return HTTPException(status_code=STATUS_INTERNAL_ERROR, detail=str(exc))
