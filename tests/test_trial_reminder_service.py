import pytest
from datetime import datetime, timedelta

from app.services.trial_reminder_service import (
    ReminderTier,
    TrialReminderService,
    days_until,
    tier_for,
)
from app.utils.errors import EmailDeliveryError


class TestDaysUntil:
    """Whole days left are rounded up."""

    def test_partial_day_rounds_up(self):
        now = datetime(2025, 6, 1, 12, 0)
        assert days_until(now + timedelta(hours=20), now) == 1
        assert days_until(now + timedelta(days=2, hours=1), now) == 3

    def test_exact_days(self):
        now = datetime(2025, 6, 1, 12, 0)
        assert days_until(now + timedelta(days=3), now) == 3

    def test_expired_trial_is_not_positive(self):
        now = datetime(2025, 6, 1, 12, 0)
        assert days_until(now - timedelta(hours=1), now) <= 0


class TestTierFor:
    def test_tiers(self):
        assert tier_for(0) is None
        assert tier_for(-2) is None
        assert tier_for(1) is ReminderTier.ONE_DAY
        assert tier_for(2) is ReminderTier.ONE_DAY
        assert tier_for(3) is ReminderTier.THREE_DAYS
        assert tier_for(4) is ReminderTier.THREE_DAYS
        assert tier_for(5) is None
        assert tier_for(14) is None


class TestTrialReminderRun:
    @pytest.mark.asyncio
    async def test_three_day_reminder_sent_once(
        self, db_session, clock, now, email_sender, make_subscriber
    ):
        subscriber = make_subscriber(trial_end=now + timedelta(days=3, hours=12))
        service = TrialReminderService(db_session, email_sender, clock=clock)

        result = await service.run()

        assert result == {"three_day_reminders": 1, "one_day_reminders": 0, "errors": []}
        assert email_sender.sent[0]["to"] == "trial@example.com"
        assert email_sender.sent[0]["subject"] == "Your trial ends in 3 days - Don't miss out!"
        assert "6/5/2025" in email_sender.sent[0]["html"]
        assert "/billing" in email_sender.sent[0]["html"]

        db_session.refresh(subscriber)
        assert subscriber.trial_reminder_3_days_sent is True
        assert subscriber.trial_reminder_1_day_sent is False

        second = await service.run()
        assert second["three_day_reminders"] == 0
        assert len(email_sender.sent) == 1

    @pytest.mark.asyncio
    async def test_one_day_reminder(
        self, db_session, clock, now, email_sender, make_subscriber
    ):
        subscriber = make_subscriber(
            trial_end=now + timedelta(hours=20), trial_reminder_3_days_sent=True
        )
        service = TrialReminderService(db_session, email_sender, clock=clock)

        result = await service.run()

        assert result["one_day_reminders"] == 1
        assert email_sender.sent[0]["subject"] == "Last chance - Your trial ends tomorrow!"
        db_session.refresh(subscriber)
        assert subscriber.trial_reminder_1_day_sent is True

    @pytest.mark.asyncio
    async def test_missed_run_still_sends_three_day_reminder(
        self, db_session, clock, now, email_sender, make_subscriber
    ):
        # Three days left: yesterday's run did not happen
        make_subscriber(trial_end=now + timedelta(days=2, hours=6))
        service = TrialReminderService(db_session, email_sender, clock=clock)

        result = await service.run()

        assert result["three_day_reminders"] == 1

    @pytest.mark.asyncio
    async def test_reminders_start_on_trial_days_ten_and_twelve(
        self, db_session, clock, now, email_sender, make_subscriber
    ):
        day_ten = make_subscriber(
            email="day10@example.com", trial_start=now - timedelta(days=10, hours=12)
        )
        day_twelve = make_subscriber(
            email="day12@example.com",
            trial_start=now - timedelta(days=12, hours=12),
            trial_reminder_3_days_sent=True,
        )
        service = TrialReminderService(
            db_session, email_sender, trial_length_days=14, clock=clock
        )

        result = await service.run()

        assert result == {"three_day_reminders": 1, "one_day_reminders": 1, "errors": []}
        subjects = {sent["to"]: sent["subject"] for sent in email_sender.sent}
        assert subjects == {
            "day10@example.com": "Your trial ends in 3 days - Don't miss out!",
            "day12@example.com": "Last chance - Your trial ends tomorrow!",
        }
        db_session.refresh(day_ten)
        db_session.refresh(day_twelve)
        assert day_ten.trial_reminder_3_days_sent is True
        assert day_twelve.trial_reminder_1_day_sent is True

    @pytest.mark.asyncio
    async def test_one_day_reminder_due_two_days_before_end(
        self, db_session, clock, now, email_sender, make_subscriber
    ):
        make_subscriber(trial_end=now + timedelta(days=1, hours=21))
        service = TrialReminderService(db_session, email_sender, clock=clock)

        result = await service.run()

        assert result["one_day_reminders"] == 1
        assert result["three_day_reminders"] == 0

    @pytest.mark.asyncio
    async def test_trial_end_derived_from_trial_start(
        self, db_session, clock, now, email_sender, make_subscriber
    ):
        subscriber = make_subscriber(trial_start=now - timedelta(days=11, hours=12))
        service = TrialReminderService(
            db_session, email_sender, trial_length_days=14, clock=clock
        )

        assert service.trial_end_for(subscriber) == now + timedelta(days=2, hours=12)
        result = await service.run()
        assert result["three_day_reminders"] == 1
        assert "14-day free trial" in email_sender.sent[0]["html"]

    @pytest.mark.asyncio
    async def test_failed_send_leaves_flag_unset(
        self, db_session, clock, now, failing_email_sender, make_subscriber
    ):
        subscriber = make_subscriber(trial_end=now + timedelta(days=3))
        sender = failing_email_sender(EmailDeliveryError("SendGrid responded with status 500"))
        service = TrialReminderService(db_session, sender, clock=clock)

        result = await service.run()

        assert result["three_day_reminders"] == 0
        assert len(result["errors"]) == 1
        assert result["errors"][0].startswith("3-day reminder to trial@example.com")
        db_session.refresh(subscriber)
        assert subscriber.trial_reminder_3_days_sent is False

    @pytest.mark.asyncio
    async def test_skips_inactive_expired_and_distant_trials(
        self, db_session, clock, now, email_sender, make_subscriber
    ):
        make_subscriber(
            email="inactive@example.com",
            is_trial_active=False,
            trial_end=now + timedelta(days=2),
        )
        make_subscriber(email="expired@example.com", trial_end=now - timedelta(hours=2))
        make_subscriber(email="early@example.com", trial_end=now + timedelta(days=10))
        make_subscriber(email="unknown@example.com")
        service = TrialReminderService(db_session, email_sender, clock=clock)

        result = await service.run()

        assert result == {"three_day_reminders": 0, "one_day_reminders": 0, "errors": []}
        assert email_sender.sent == []

    @pytest.mark.asyncio
    async def test_mark_sent_is_idempotent(
        self, db_session, clock, now, email_sender, make_subscriber
    ):
        subscriber = make_subscriber(trial_end=now + timedelta(days=3))
        service = TrialReminderService(db_session, email_sender, clock=clock)

        assert await service.mark_sent(subscriber.id, ReminderTier.THREE_DAYS) is True
        assert await service.mark_sent(subscriber.id, ReminderTier.THREE_DAYS) is False
