import asyncio
from typing import Optional

from sqlalchemy.orm import Session

from app.celery import celery
from app.services.email_service import EmailService
from app.services.notifications.email_notification_service import EmailSender
from app.services.security_monitor_service import SecurityMonitorService

from .job_runner import run_job

JOB_NAME = "security_pattern_monitor"


@celery.task(bind=True, max_retries=3, default_retry_delay=60)
def security_pattern_monitor_task(self, request_id: str):
    """
    Hourly threshold check over recent security events; emails the configured
    security contact when the alert level is high.

    Args:
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    return asyncio.run(security_pattern_monitor_job(request_id))


async def security_pattern_monitor_job(
    request_id: str,
    db_session: Optional[Session] = None,
    email_sender: Optional[EmailSender] = None,
):
    async def body(session: Session):
        return await SecurityMonitorService(
            session, email_sender=email_sender or EmailService()
        ).run()

    return await run_job(
        JOB_NAME,
        request_id,
        body,
        success_message="Security pattern check complete",
        db_session=db_session,
    )
