import asyncio
from typing import Optional

from sqlalchemy.orm import Session

from app.celery import celery
from app.config.settings import settings
from app.services.email_service import EmailService
from app.services.notifications.email_notification_service import EmailSender
from app.services.notifications.scheduled_notification_dispatcher import (
    ScheduledNotificationDispatcher,
)

from .job_runner import run_job

JOB_NAME = "process_scheduled_notifications"


@celery.task(bind=True, max_retries=3, default_retry_delay=30)
def scheduled_notification_processor_task(self, request_id: str):
    """
    Periodic task that dispatches every due scheduled notification.
    Runs every 15 minutes; each due row becomes an in-app notification plus an
    email when the user's preferences allow it.

    Args:
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    return asyncio.run(process_scheduled_notifications_job(request_id))


async def process_scheduled_notifications_job(
    request_id: str,
    db_session: Optional[Session] = None,
    email_sender: Optional[EmailSender] = None,
):
    async def body(session: Session):
        dispatcher = ScheduledNotificationDispatcher(
            session,
            email_sender or EmailService(),
            batch_size=settings.NOTIFICATION_BATCH_SIZE,
        )
        return await dispatcher.run()

    return await run_job(
        JOB_NAME,
        request_id,
        body,
        success_message="Notification processing complete",
        db_session=db_session,
    )
