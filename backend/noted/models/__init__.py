from noted.models.custom_reminder import CustomReminder
from noted.models.journal_entry import JournalEntry
from noted.models.notification_job import NotificationJob
from noted.models.notification_preference import NotificationPreference
from noted.models.profile import Profile
from noted.models.streak_snapshot import StreakSnapshot

__all__ = [
    "CustomReminder",
    "JournalEntry",
    "NotificationJob",
    "NotificationPreference",
    "Profile",
    "StreakSnapshot",
]
