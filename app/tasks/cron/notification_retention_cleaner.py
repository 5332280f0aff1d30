import asyncio
from typing import Optional

from sqlalchemy.orm import Session

from app.celery import celery
from app.services.notifications.retention_service import NotificationRetentionService

from .job_runner import run_job

JOB_NAME = "notification_retention"


@celery.task(bind=True, max_retries=3, default_retry_delay=60)
def notification_retention_cleaner_task(self, request_id: str):
    """
    Daily maintenance of the scheduled notification queue: releases stale
    claims, marks exhausted rows as failed and purges old rows.

    Args:
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    return asyncio.run(notification_retention_job(request_id))


async def notification_retention_job(
    request_id: str, db_session: Optional[Session] = None
):
    async def body(session: Session):
        return await NotificationRetentionService(session).run()

    return await run_job(
        JOB_NAME,
        request_id,
        body,
        success_message="Notification retention complete",
        db_session=db_session,
    )
