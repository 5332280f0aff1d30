import asyncio
from typing import Optional

from sqlalchemy.orm import Session

from app.celery import celery
from app.services.email_service import EmailService
from app.services.notifications.email_notification_service import EmailSender
from app.services.trial_reminder_service import TrialReminderService

from .job_runner import run_job

JOB_NAME = "send_trial_reminders"


@celery.task(bind=True, max_retries=3, default_retry_delay=60)
def trial_reminder_sender_task(self, request_id: str):
    """
    Daily task sending the 3-day and 1-day trial expiry reminder emails.

    Args:
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    return asyncio.run(send_trial_reminders_job(request_id))


async def send_trial_reminders_job(
    request_id: str,
    db_session: Optional[Session] = None,
    email_sender: Optional[EmailSender] = None,
):
    async def body(session: Session):
        return await TrialReminderService(session, email_sender or EmailService()).run()

    return await run_job(
        JOB_NAME,
        request_id,
        body,
        success_message="Trial reminder check complete",
        db_session=db_session,
    )
