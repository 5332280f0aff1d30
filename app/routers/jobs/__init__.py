from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.db.session import get_sync_session
from app.middlewares.cron_auth import verify_cron_secret
from app.services.email_service import EmailService
from app.tasks.cron.notification_retention_cleaner import notification_retention_job
from app.tasks.cron.scheduled_notification_processor import (
    process_scheduled_notifications_job,
)
from app.tasks.cron.security_pattern_monitor import security_pattern_monitor_job
from app.tasks.cron.trial_reminder_sender import send_trial_reminders_job
from app.utils.responses import ResponseBuilder

jobs_router = APIRouter(dependencies=[Depends(verify_cron_secret)])


def get_email_sender() -> EmailService:
    return EmailService()


@jobs_router.post("/process-notifications")
async def process_notifications(
    request: Request,
    db: Annotated[Session, Depends(get_sync_session)],
    email_sender: Annotated[EmailService, Depends(get_email_sender)],
):
    """Dispatch every due scheduled notification now."""
    result = await process_scheduled_notifications_job(
        request.state.request_id, db_session=db, email_sender=email_sender
    )
    return ResponseBuilder.job_result(result)


@jobs_router.post("/send-trial-reminders")
async def send_trial_reminders(
    request: Request,
    db: Annotated[Session, Depends(get_sync_session)],
    email_sender: Annotated[EmailService, Depends(get_email_sender)],
):
    """Send any trial expiry reminders that are due."""
    result = await send_trial_reminders_job(
        request.state.request_id, db_session=db, email_sender=email_sender
    )
    return ResponseBuilder.job_result(result)


@jobs_router.post("/notification-retention")
async def notification_retention(
    request: Request,
    db: Annotated[Session, Depends(get_sync_session)],
):
    result = await notification_retention_job(request.state.request_id, db_session=db)
    return ResponseBuilder.job_result(result)


@jobs_router.post("/security-monitor")
async def security_monitor(
    request: Request,
    db: Annotated[Session, Depends(get_sync_session)],
    email_sender: Annotated[EmailService, Depends(get_email_sender)],
):
    result = await security_pattern_monitor_job(
        request.state.request_id, db_session=db, email_sender=email_sender
    )
    return ResponseBuilder.job_result(result)
