from .notification_retention_cleaner import notification_retention_cleaner_task
from .scheduled_notification_processor import scheduled_notification_processor_task
from .security_pattern_monitor import security_pattern_monitor_task
from .trial_reminder_sender import trial_reminder_sender_task

__all__ = [
    "scheduled_notification_processor_task",
    "trial_reminder_sender_task",
    "notification_retention_cleaner_task",
    "security_pattern_monitor_task",
]
