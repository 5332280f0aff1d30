from .cron import *

__all__ = [
    # Scheduled/Cron Tasks
    "scheduled_notification_processor_task",
    "trial_reminder_sender_task",
    "notification_retention_cleaner_task",
    "security_pattern_monitor_task",
]
