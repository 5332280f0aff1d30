import pytest
import uuid
from datetime import datetime, timedelta
from typing import Generator, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from app.db.models import (
    Base,
    NotificationPreference,
    Profile,
    ScheduledNotification,
    SecurityEvent,
    Subscriber,
)


# Test database setup
TEST_DATABASE_URL = "sqlite://"

# Fixed "current time" shared by every job under test
NOW = datetime(2025, 6, 1, 12, 0, 0)


class FakeEmailSender:
    """Records sent emails instead of calling SendGrid."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.fail_with = fail_with
        self.sent: List[dict] = []

    async def send(self, to: str, subject: str, html: str) -> Optional[str]:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"to": to, "subject": subject, "html": html})
        return f"msg-{len(self.sent)}"


@pytest.fixture
def test_engine():
    """Create a fresh in-memory database for each test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a database session for each test."""
    session = Session(bind=test_engine, expire_on_commit=False)
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


# Test data factories
@pytest.fixture
def make_profile(db_session: Session):
    """Create a profile with a login email."""

    def _make(user_id: Optional[str] = None, email: Optional[str] = "owner@example.com"):
        profile = Profile(
            id=str(uuid.uuid4()),
            user_id=user_id or str(uuid.uuid4()),
            email=email,
            first_name="Dana",
            company="Acme Holdings LLC",
        )
        db_session.add(profile)
        db_session.commit()
        return profile

    return _make


@pytest.fixture
def make_preference(db_session: Session):
    def _make(
        user_id: str,
        email_notifications: bool = True,
        notification_types: Optional[List[str]] = None,
        reminder_days_before: Optional[List[int]] = None,
    ):
        preference = NotificationPreference(
            user_id=user_id,
            email_notifications=email_notifications,
            notification_types=(
                notification_types
                if notification_types is not None
                else ["renewal_reminder", "payment_due", "compliance_check"]
            ),
            reminder_days_before=reminder_days_before or [30, 14, 7, 1],
        )
        db_session.add(preference)
        db_session.commit()
        return preference

    return _make


@pytest.fixture
def make_scheduled_notification(db_session: Session):
    """Create a scheduled notification, due yesterday unless told otherwise."""

    def _make(
        user_id: str,
        scheduled_for: Optional[datetime] = None,
        notification_type: str = "renewal_reminder",
        title: str = "Annual report due",
        message: str = "Your annual report for Acme Holdings LLC is due soon.",
        retry_count: int = 0,
        max_retries: int = 3,
        metadata: Optional[dict] = None,
        **kwargs,
    ):
        scheduled = ScheduledNotification(
            id=str(uuid.uuid4()),
            user_id=user_id,
            entity_id=str(uuid.uuid4()),
            notification_type=notification_type,
            title=title,
            message=message,
            scheduled_for=scheduled_for or NOW - timedelta(days=1),
            retry_count=retry_count,
            max_retries=max_retries,
            notification_metadata=metadata or {},
            **kwargs,
        )
        db_session.add(scheduled)
        db_session.commit()
        return scheduled

    return _make


@pytest.fixture
def make_subscriber(db_session: Session):
    def _make(
        email: str = "trial@example.com",
        is_trial_active: bool = True,
        trial_start: Optional[datetime] = None,
        trial_end: Optional[datetime] = None,
        **kwargs,
    ):
        subscriber = Subscriber(
            id=str(uuid.uuid4()),
            email=email,
            is_trial_active=is_trial_active,
            trial_start=trial_start,
            trial_end=trial_end,
            **kwargs,
        )
        db_session.add(subscriber)
        db_session.commit()
        return subscriber

    return _make


@pytest.fixture
def make_security_events(db_session: Session):
    """Create `count` events of one kind, recorded `minutes_ago` before NOW."""

    def _make(
        event_name: str,
        count: int = 1,
        ip_address: Optional[str] = "203.0.113.7",
        minutes_ago: int = 5,
    ):
        events = [
            SecurityEvent(
                id=str(uuid.uuid4()),
                event_name=event_name,
                ip_address=ip_address,
                created_at=NOW - timedelta(minutes=minutes_ago),
            )
            for _ in range(count)
        ]
        db_session.add_all(events)
        db_session.commit()
        return events

    return _make


@pytest.fixture
def failing_email_sender():
    """Build a sender whose every send raises `error`."""

    def _make(error: Exception) -> FakeEmailSender:
        return FakeEmailSender(fail_with=error)

    return _make
