from celery.schedules import crontab
from .settings import settings

# Basic Celery Configuration
broker_url = settings.redis_url
result_backend = settings.redis_url

# Task Discovery
include = ["app.tasks"]

# Timezone Configuration
timezone = settings.CELERY_TIMEZONE
enable_utc = True

# Task Result Configuration
result_expires = 3600

# Task Serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

# Task Execution Configuration
task_track_started = True
task_time_limit = 15 * 60  # 15 minutes
task_soft_time_limit = 12 * 60  # 12 minutes

# Worker Configuration
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# Task Retry Configuration
task_acks_late = True
task_reject_on_worker_lost = True
task_default_retry_delay = 60  # 60 seconds
task_max_retries = 3

# Beat schedules, all times in CELERY_TIMEZONE
beat_schedule = {
    # Scheduled notification dispatch - every 15 minutes
    "process-scheduled-notifications": {
        "task": "app.tasks.cron.scheduled_notification_processor.scheduled_notification_processor_task",
        "schedule": crontab(minute="*/15"),
        "args": ("scheduled_notification_processor_cron",),
    },
    # Trial reminders - daily at 9:00 AM
    "send-trial-reminders": {
        "task": "app.tasks.cron.trial_reminder_sender.trial_reminder_sender_task",
        "schedule": crontab(hour=9, minute=0),
        "args": ("trial_reminder_sender_cron",),
    },
    # Notification retention - daily at 00:05
    "notification-retention": {
        "task": "app.tasks.cron.notification_retention_cleaner.notification_retention_cleaner_task",
        "schedule": crontab(hour=0, minute=5),
        "args": ("notification_retention_cleaner_cron",),
    },
    # Security pattern check - hourly
    "security-monitor": {
        "task": "app.tasks.cron.security_pattern_monitor.security_pattern_monitor_task",
        "schedule": crontab(minute=0),
        "args": ("security_pattern_monitor_cron",),
    },
}

# Default Queue
task_default_queue = "entity-renewal"

# Beat Scheduler Configuration
beat_schedule_filename = "tmp/celerybeat-schedule"
