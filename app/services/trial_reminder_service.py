import enum
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.models import Subscriber
from app.services.notifications.email_notification_service import EmailSender
from app.templates.email_templates import (
    TRIAL_ONE_DAY_TEMPLATE,
    TRIAL_THREE_DAYS_TEMPLATE,
    render_email,
)
from app.utils.datetime_utils import naive_utc_now
from app.utils.logging import get_logger

logger = get_logger()

SECONDS_PER_DAY = 24 * 60 * 60


class ReminderTier(enum.Enum):
    THREE_DAYS = "3-day"
    ONE_DAY = "1-day"

    @property
    def flag(self):
        if self is ReminderTier.THREE_DAYS:
            return Subscriber.trial_reminder_3_days_sent
        return Subscriber.trial_reminder_1_day_sent

    @property
    def subject(self) -> str:
        if self is ReminderTier.THREE_DAYS:
            return "Your trial ends in 3 days - Don't miss out!"
        return "Last chance - Your trial ends tomorrow!"

    @property
    def template(self) -> str:
        if self is ReminderTier.THREE_DAYS:
            return TRIAL_THREE_DAYS_TEMPLATE
        return TRIAL_ONE_DAY_TEMPLATE


def days_until(trial_end: datetime, now: datetime) -> int:
    """Whole days left before trial_end, rounded up; 0 or less once it has passed."""
    return math.ceil((trial_end - now).total_seconds() / SECONDS_PER_DAY)


def tier_for(days_left: int) -> Optional[ReminderTier]:
    """
    The 3-day reminder is due from 4 days left (trial day 10), the 1-day
    reminder from 2 days left (trial day 12). Each tier stays due until the
    next one starts, so a skipped run still sends it.
    """
    if days_left <= 0:
        return None
    if days_left <= 2:
        return ReminderTier.ONE_DAY
    if days_left <= 4:
        return ReminderTier.THREE_DAYS
    return None


class TrialReminderService:
    """
    Sends the 3-day and 1-day trial expiry reminders.

    Days left are computed from the trial end on every run rather than from a
    fixed window relative to the trial start, so a skipped cron run delays a
    reminder instead of losing it. The per-tier sent flag is only set after the
    email provider accepted the message.
    """

    def __init__(
        self,
        db_session: Session,
        email_sender: EmailSender,
        trial_length_days: Optional[int] = None,
        clock: Callable[[], datetime] = naive_utc_now,
    ):
        self.db = db_session
        self.email_sender = email_sender
        self.trial_length_days = trial_length_days or settings.TRIAL_LENGTH_DAYS
        self.clock = clock

    def trial_end_for(self, subscriber: Subscriber) -> Optional[datetime]:
        if subscriber.trial_end is not None:
            return subscriber.trial_end
        if subscriber.trial_start is not None:
            return subscriber.trial_start + timedelta(days=self.trial_length_days)
        return None

    async def fetch_candidates(self) -> List[Subscriber]:
        """Active trials still owed at least one reminder."""
        stmt = (
            select(Subscriber)
            .where(
                and_(
                    Subscriber.is_trial_active == True,  # noqa: E712
                    or_(
                        Subscriber.trial_reminder_3_days_sent == False,  # noqa: E712
                        Subscriber.trial_reminder_1_day_sent == False,  # noqa: E712
                    ),
                    or_(
                        Subscriber.trial_end.is_not(None),
                        Subscriber.trial_start.is_not(None),
                    ),
                )
            )
            .order_by(Subscriber.created_at)
        )
        return list(self.db.scalars(stmt).all())

    def due_reminders(
        self, subscribers: List[Subscriber], now: datetime
    ) -> List[Tuple[Subscriber, ReminderTier, datetime]]:
        due = []
        for subscriber in subscribers:
            trial_end = self.trial_end_for(subscriber)
            if trial_end is None:
                continue
            tier = tier_for(days_until(trial_end, now))
            if tier is None:
                continue
            already_sent = (
                subscriber.trial_reminder_3_days_sent
                if tier is ReminderTier.THREE_DAYS
                else subscriber.trial_reminder_1_day_sent
            )
            if not already_sent:
                due.append((subscriber, tier, trial_end))
        return due

    async def send_reminder(
        self, subscriber: Subscriber, tier: ReminderTier, trial_end: datetime
    ) -> None:
        html = render_email(
            tier.template,
            brand_name=settings.EMAIL_FROM_NAME,
            header_background="#f8f9fa" if tier is ReminderTier.THREE_DAYS else "#fff3e0",
            trial_length_days=self.trial_length_days,
            trial_end=trial_end,
            billing_url=f"{settings.APP_BASE_URL.rstrip('/')}/billing",
        )
        await self.email_sender.send(to=subscriber.email, subject=tier.subject, html=html)

    async def mark_sent(self, subscriber_id: str, tier: ReminderTier) -> bool:
        """Set the tier's flag unless another run already did."""
        result = self.db.execute(
            update(Subscriber)
            .where(and_(Subscriber.id == subscriber_id, tier.flag == False))  # noqa: E712
            .values({tier.flag.key: True})
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    async def run(self) -> Dict[str, Any]:
        now = self.clock()
        due = self.due_reminders(await self.fetch_candidates(), now)

        results: Dict[str, Any] = {
            "three_day_reminders": 0,
            "one_day_reminders": 0,
            "errors": [],
        }
        logger.info(f"Found {len(due)} trial reminders to send")

        for subscriber, tier, trial_end in due:
            subscriber_id = subscriber.id
            email = subscriber.email
            try:
                await self.send_reminder(subscriber, tier, trial_end)
                await self.mark_sent(subscriber_id, tier)
            except Exception as e:
                self.db.rollback()
                logger.error(
                    f"Error sending {tier.value} reminder",
                    subscriber_id=subscriber_id,
                    error=str(e),
                )
                results["errors"].append(f"{tier.value} reminder to {email}: {str(e)}")
                continue

            if tier is ReminderTier.THREE_DAYS:
                results["three_day_reminders"] += 1
            else:
                results["one_day_reminders"] += 1
            logger.info(f"Sent {tier.value} reminder", subscriber_id=subscriber_id)

        logger.info(
            "Trial reminder check complete",
            three_day_reminders=results["three_day_reminders"],
            one_day_reminders=results["one_day_reminders"],
            errors=len(results["errors"]),
        )
        return results
