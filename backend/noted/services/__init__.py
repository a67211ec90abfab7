from noted.services.queue_consumer import run_email_queue
from noted.services.reminder_service import create_reminder, list_reminders

__all__ = ["run_email_queue", "create_reminder", "list_reminders"]
