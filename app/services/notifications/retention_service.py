from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.models import ScheduledNotification, ScheduledNotificationStatus
from app.utils.datetime_utils import naive_utc_now
from app.utils.logging import get_logger

logger = get_logger()


class NotificationRetentionService:
    """Housekeeping for the scheduled notification queue"""

    def __init__(
        self,
        db_session: Session,
        claim_timeout_minutes: Optional[int] = None,
        retention_days: Optional[int] = None,
        failed_retention_days: Optional[int] = None,
        clock: Callable[[], datetime] = naive_utc_now,
    ):
        self.db = db_session
        self.claim_timeout = timedelta(
            minutes=claim_timeout_minutes or settings.NOTIFICATION_CLAIM_TIMEOUT_MINUTES
        )
        self.retention = timedelta(
            days=retention_days or settings.NOTIFICATION_RETENTION_DAYS
        )
        self.failed_retention = timedelta(
            days=failed_retention_days or settings.FAILED_NOTIFICATION_RETENTION_DAYS
        )
        self.clock = clock

    async def release_stale_claims(self, now: datetime) -> int:
        """Return rows left claimed by a crashed run to pending; retry_count is untouched."""
        result = self.db.execute(
            update(ScheduledNotification)
            .where(
                and_(
                    ScheduledNotification.status == ScheduledNotificationStatus.CLAIMED,
                    ScheduledNotification.claimed_at < now - self.claim_timeout,
                )
            )
            .values(
                status=ScheduledNotificationStatus.PENDING,
                claimed_at=None,
                claim_token=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def mark_exhausted(self) -> int:
        """Flag pending rows that can no longer be selected because their retries ran out."""
        exhausted = self.db.scalars(
            select(ScheduledNotification).where(
                and_(
                    ScheduledNotification.status == ScheduledNotificationStatus.PENDING,
                    ScheduledNotification.processed == False,  # noqa: E712
                    ScheduledNotification.retry_count
                    >= ScheduledNotification.max_retries,
                )
            )
        ).all()

        for scheduled in exhausted:
            scheduled.status = ScheduledNotificationStatus.FAILED
            logger.warning(
                "Scheduled notification permanently failed",
                scheduled_notification_id=scheduled.id,
                user_id=scheduled.user_id,
                retry_count=scheduled.retry_count,
                error_message=scheduled.error_message,
            )
        return len(exhausted)

    async def purge(self, now: datetime) -> Dict[str, int]:
        done = self.db.execute(
            delete(ScheduledNotification)
            .where(
                and_(
                    ScheduledNotification.status == ScheduledNotificationStatus.DONE,
                    ScheduledNotification.processed_at < now - self.retention,
                )
            )
            .execution_options(synchronize_session=False)
        )
        failed = self.db.execute(
            delete(ScheduledNotification)
            .where(
                and_(
                    ScheduledNotification.status == ScheduledNotificationStatus.FAILED,
                    or_(
                        ScheduledNotification.updated_at < now - self.failed_retention,
                        and_(
                            ScheduledNotification.updated_at.is_(None),
                            ScheduledNotification.created_at
                            < now - self.failed_retention,
                        ),
                    ),
                )
            )
            .execution_options(synchronize_session=False)
        )
        return {"purged_processed": done.rowcount, "purged_failed": failed.rowcount}

    async def run(self) -> Dict[str, int]:
        now = self.clock()
        try:
            released = await self.release_stale_claims(now)
            exhausted = await self.mark_exhausted()
            # flush so freshly failed rows are visible to the purge
            self.db.flush()
            purged = await self.purge(now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        results = {"released_claims": released, "marked_failed": exhausted, **purged}
        logger.info("Notification retention complete", **results)
        return results
