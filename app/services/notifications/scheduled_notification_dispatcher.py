import uuid
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import and_, select, update
from sqlalchemy.orm import Session

from app.db.models import (
    DeliveryChannel,
    Notification,
    Profile,
    ScheduledNotification,
    ScheduledNotificationStatus,
)
from app.schemas.notification_schemas import EmailNotificationPayload
from app.utils.datetime_utils import naive_utc_now
from app.utils.errors import LookupFailedError
from app.utils.logging import get_logger

from .email_notification_service import EmailNotificationService, EmailSender
from .preference_service import PreferenceService

logger = get_logger()

ERROR_MESSAGE_MAX_LENGTH = 2000


class ScheduledNotificationDispatcher:
    """
    Turns due scheduled notifications into in-app notifications and emails.

    Rows are processed one at a time. Each row is claimed with a conditional
    update before any work happens, so overlapping runs never process the same
    row twice. A failure only affects its own row: the retry counter goes up by
    one and the row returns to pending, or to failed once max_retries is reached.
    """

    def __init__(
        self,
        db_session: Session,
        email_sender: EmailSender,
        batch_size: Optional[int] = None,
        clock: Callable[[], datetime] = naive_utc_now,
    ):
        self.db = db_session
        self.batch_size = batch_size
        self.clock = clock
        self.preferences = PreferenceService(db_session)
        self.email_notifications = EmailNotificationService(db_session, email_sender)

    async def fetch_due(self, now: datetime) -> List[ScheduledNotification]:
        stmt = (
            select(ScheduledNotification)
            .where(
                and_(
                    ScheduledNotification.processed == False,  # noqa: E712
                    ScheduledNotification.status == ScheduledNotificationStatus.PENDING,
                    ScheduledNotification.scheduled_for <= now,
                    ScheduledNotification.retry_count
                    < ScheduledNotification.max_retries,
                )
            )
            .order_by(ScheduledNotification.scheduled_for, ScheduledNotification.id)
        )
        if self.batch_size:
            stmt = stmt.limit(self.batch_size)
        return list(self.db.scalars(stmt).all())

    async def claim(self, scheduled: ScheduledNotification, claim_token: str) -> bool:
        """Move a row from pending to claimed; False when another run got there first."""
        result = self.db.execute(
            update(ScheduledNotification)
            .where(
                and_(
                    ScheduledNotification.id == scheduled.id,
                    ScheduledNotification.status == ScheduledNotificationStatus.PENDING,
                    ScheduledNotification.processed == False,  # noqa: E712
                )
            )
            .values(
                status=ScheduledNotificationStatus.CLAIMED,
                claimed_at=self.clock(),
                claim_token=claim_token,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount != 1:
            return False
        self.db.refresh(scheduled)
        return True

    async def _resolve_email(self, user_id: str) -> str:
        profile = self.db.execute(
            select(Profile).where(Profile.user_id == user_id)
        ).scalar_one_or_none()
        if profile is None:
            raise LookupFailedError(
                f"Failed to get user profile: no profile for user {user_id}"
            )
        if not profile.email:
            raise LookupFailedError("Failed to get user email: No email found")
        return profile.email

    @staticmethod
    def _metadata_value(metadata: Dict[str, Any], key: str) -> Any:
        value = metadata.get(key)
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return value

    async def process_one(self, scheduled: ScheduledNotification) -> Notification:
        """Deliver one claimed row. Raises on lookup or database failure."""
        user_email = await self._resolve_email(scheduled.user_id)
        preferences = await self.preferences.resolve(scheduled.user_id)
        metadata = dict(scheduled.notification_metadata or {})

        notification = Notification(
            id=str(uuid.uuid4()),
            user_id=scheduled.user_id,
            entity_id=scheduled.entity_id,
            type=scheduled.notification_type,
            notification_type=(
                DeliveryChannel.BOTH
                if preferences.email_notifications
                else DeliveryChannel.IN_APP
            ),
            title=scheduled.title,
            message=scheduled.message,
            timestamp=self.clock(),
            read=False,
            email_sent=False,
            retry_count=0,
            notification_metadata=metadata,
        )
        self.db.add(notification)
        self.db.flush()

        if preferences.wants_email_for(scheduled.notification_type):
            try:
                payload = EmailNotificationPayload(
                    notification_id=notification.id,
                    user_email=user_email,
                    title=scheduled.title,
                    message=scheduled.message,
                    notification_type=scheduled.notification_type,
                    entity_name=self._metadata_value(metadata, "entity_name"),
                    due_date=self._metadata_value(metadata, "due_date"),
                    amount=self._metadata_value(metadata, "amount"),
                )
                await self.email_notifications.send_notification_email(payload)
            except Exception as e:
                # The in-app notification stands on its own; email is best effort
                logger.error(
                    "Email error for scheduled notification",
                    scheduled_notification_id=scheduled.id,
                    error=str(e),
                )

        scheduled.processed = True
        scheduled.processed_at = self.clock()
        scheduled.status = ScheduledNotificationStatus.DONE
        scheduled.error_message = None
        scheduled.claim_token = None
        self.db.commit()
        return notification

    async def record_failure(
        self, scheduled_id: str, claim_token: str, error: Exception
    ) -> None:
        self.db.rollback()
        scheduled = self.db.get(ScheduledNotification, scheduled_id)
        if scheduled is None or scheduled.claim_token != claim_token:
            logger.warning(
                "Scheduled notification claim lost before failure could be recorded",
                scheduled_notification_id=scheduled_id,
            )
            return

        scheduled.retry_count = scheduled.retry_count + 1
        scheduled.error_message = str(error)[:ERROR_MESSAGE_MAX_LENGTH]
        scheduled.claim_token = None
        scheduled.claimed_at = None
        scheduled.status = (
            ScheduledNotificationStatus.FAILED
            if scheduled.retry_count >= scheduled.max_retries
            else ScheduledNotificationStatus.PENDING
        )
        self.db.commit()

        if scheduled.status == ScheduledNotificationStatus.FAILED:
            logger.warning(
                "Scheduled notification exhausted its retries",
                scheduled_notification_id=scheduled_id,
                retry_count=scheduled.retry_count,
                max_retries=scheduled.max_retries,
            )

    async def run(self) -> Dict[str, int]:
        """Process every due row once and return aggregate counts."""
        due = await self.fetch_due(self.clock())
        logger.info(f"Found {len(due)} scheduled notifications to process")

        counts = {"processed": 0, "errors": 0, "skipped": 0, "total": len(due)}

        for scheduled in due:
            scheduled_id = scheduled.id
            claim_token = str(uuid.uuid4())

            if not await self.claim(scheduled, claim_token):
                logger.info(
                    "Scheduled notification already claimed, skipping",
                    scheduled_notification_id=scheduled_id,
                )
                counts["skipped"] += 1
                continue

            try:
                await self.process_one(scheduled)
                counts["processed"] += 1
                logger.info(
                    "Processed scheduled notification",
                    scheduled_notification_id=scheduled_id,
                )
            except Exception as e:
                counts["errors"] += 1
                logger.error(
                    "Error processing scheduled notification",
                    scheduled_notification_id=scheduled_id,
                    error=str(e),
                )
                await self.record_failure(scheduled_id, claim_token, e)

        logger.info(
            "Scheduled notification processing complete",
            processed=counts["processed"],
            errors=counts["errors"],
            skipped=counts["skipped"],
        )
        return counts
