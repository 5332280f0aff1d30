from .email_notification_service import EmailNotificationService, EmailSender
from .preference_service import PreferenceService, default_preferences
from .retention_service import NotificationRetentionService
from .scheduled_notification_dispatcher import ScheduledNotificationDispatcher

__all__ = [
    "EmailNotificationService",
    "EmailSender",
    "PreferenceService",
    "default_preferences",
    "NotificationRetentionService",
    "ScheduledNotificationDispatcher",
]
