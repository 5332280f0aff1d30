from typing import Any, Dict, Optional, Protocol

from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.models import Notification
from app.schemas.notification_schemas import EmailNotificationPayload
from app.templates.email_templates import NOTIFICATION_TEMPLATE, render_email
from app.utils.datetime_utils import naive_utc_now
from app.utils.errors import EmailDeliveryError
from app.utils.logging import get_logger

logger = get_logger()

# notification_type -> (heading, background, accent colour) of the details block
DETAIL_BLOCKS: Dict[str, tuple] = {
    "renewal_reminder": ("Renewal Details", "#e3f2fd", "#1976d2"),
    "payment_due": ("Payment Details", "#fff3e0", "#f57c00"),
}


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html: str) -> Optional[str]: ...


class EmailNotificationService:
    """Renders a notification email, sends it and records the result on the in-app row"""

    def __init__(self, db_session: Session, email_sender: EmailSender):
        self.db = db_session
        self.email_sender = email_sender

    def render(self, payload: EmailNotificationPayload) -> Dict[str, str]:
        context: Dict[str, Any] = {
            "brand_name": settings.EMAIL_FROM_NAME,
            "title": payload.title,
            "message": payload.message,
            "entity_name": payload.entity_name,
            "due_date": payload.due_date,
            "amount": payload.amount,
            "dashboard_url": settings.APP_BASE_URL,
            "details_heading": None,
            "details_background": None,
            "details_color": None,
        }

        block = DETAIL_BLOCKS.get(payload.notification_type)
        if block and payload.entity_name:
            heading, background, color = block
            context.update(
                details_heading=heading,
                details_background=background,
                details_color=color,
            )

        return {
            "subject": payload.title,
            "html": render_email(NOTIFICATION_TEMPLATE, **context),
        }

    async def send_notification_email(
        self, payload: EmailNotificationPayload
    ) -> Optional[str]:
        """
        Send the email for one in-app notification.

        On success the notification is flagged email_sent. On failure its
        retry_count and metadata record the error and EmailDeliveryError is raised.
        """
        notification = self.db.get(Notification, payload.notification_id)
        rendered = self.render(payload)

        try:
            message_id = await self.email_sender.send(
                to=payload.user_email,
                subject=rendered["subject"],
                html=rendered["html"],
            )
        except Exception as e:
            logger.warning(
                "Notification email failed",
                notification_id=payload.notification_id,
                error=str(e),
            )
            if notification is not None:
                notification.retry_count = (notification.retry_count or 0) + 1
                notification.notification_metadata = {
                    **(notification.notification_metadata or {}),
                    "email_error": str(e),
                }
            if isinstance(e, EmailDeliveryError):
                raise
            raise EmailDeliveryError(str(e)) from e

        if notification is not None:
            notification.email_sent = True
            notification.sent_at = naive_utc_now()
        else:
            logger.warning(
                "Email sent for unknown notification",
                notification_id=payload.notification_id,
            )

        logger.info(
            "Notification email sent",
            notification_id=payload.notification_id,
            message_id=message_id,
        )
        return message_id
