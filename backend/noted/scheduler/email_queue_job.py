"""
Every minute: drain due notification_jobs (at most 50 per tick) through the queue consumer.
Overlapping ticks are harmless; the claim step makes each job go out once.
"""
import logging

from noted.core.errors import BatchFetchError
from noted.services.queue_consumer import run_email_queue

logger = logging.getLogger(__name__)


def run_email_queue_job() -> None:
    try:
        run_email_queue()
    except BatchFetchError as e:
        logger.error("Email queue job: %s", e)
    except Exception as e:
        logger.exception("Email queue job failed: %s", e)
