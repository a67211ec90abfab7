#!/usr/bin/env python3
"""
Run one email queue invocation (what POST /cron/process-email-queue does) and print the summary.
Optionally fire due custom reminders, enqueue preference-driven emails and scan for
inactive users first.

Run from backend dir:
  python scripts/process_email_queue.py
  python scripts/process_email_queue.py --enqueue
"""
import argparse
import json
import logging
import sys
from pathlib import Path

backend_dir = Path(__file__).resolve().parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from noted.core.errors import BatchFetchError
from noted.db.session import SessionLocal
from noted.services.job_scheduler import enqueue_due_notifications, enqueue_inactive_users
from noted.services.queue_consumer import run_email_queue
from noted.services.reminder_dispatch import dispatch_due_reminders


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--enqueue", action="store_true", help="dispatch reminders, enqueue notifications and inactive-user emails first")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if args.enqueue:
        db = SessionLocal()
        try:
            print("Reminders:", dispatch_due_reminders(db))
            print("Enqueued:", enqueue_due_notifications(db))
            print("Inactive users:", enqueue_inactive_users(db))
        finally:
            db.close()
    try:
        summary = run_email_queue()
    except BatchFetchError as e:
        print("FAIL", e)
        sys.exit(1)
    print(json.dumps(summary.as_dict(), indent=2))


if __name__ == "__main__":
    main()
