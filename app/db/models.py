from typing import Any, Dict, List, Optional
from datetime import datetime
import uuid
from sqlalchemy import (
    String,
    Boolean,
    Integer,
    Text,
    Enum,
    Index,
    func,
    UniqueConstraint,
    CheckConstraint,
    DateTime,
    JSON,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import enum


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


# Enums
class ScheduledNotificationStatus(enum.Enum):
    PENDING = "pending"
    CLAIMED = "claimed"
    DONE = "done"
    FAILED = "failed"


class DeliveryChannel(enum.Enum):
    EMAIL = "email"
    IN_APP = "in_app"
    BOTH = "both"


class SecuritySeverity(enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CronReportStatus(enum.Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


DEFAULT_NOTIFICATION_TYPES = ["renewal_reminder", "payment_due", "compliance_check"]
DEFAULT_REMINDER_DAYS_BEFORE = [30, 14, 7, 1]


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


# Models
class Profile(Base, AuditMixin):
    """User profile joined with the auth provider's login email."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(320))  # RFC 5321 max length
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    company: Mapped[Optional[str]] = mapped_column(String(200))

    __table_args__ = (Index("idx_profiles_user_id", "user_id"),)


class NotificationPreference(Base, AuditMixin):
    __tablename__ = "notification_preferences"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    email_notifications: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    notification_types: Mapped[List[str]] = mapped_column(
        JSON, default=lambda: list(DEFAULT_NOTIFICATION_TYPES), nullable=False
    )
    reminder_days_before: Mapped[List[int]] = mapped_column(
        JSON, default=lambda: list(DEFAULT_REMINDER_DAYS_BEFORE), nullable=False
    )

    __table_args__ = (Index("idx_notif_prefs_user_id", "user_id"),)


class ScheduledNotification(Base, AuditMixin):
    __tablename__ = "scheduled_notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(36))
    notification_type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    notification_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata", JSON, default=dict
    )
    # pending -> claimed -> done | pending (retry) | failed (retries exhausted)
    status: Mapped[ScheduledNotificationStatus] = mapped_column(
        Enum(ScheduledNotificationStatus),
        default=ScheduledNotificationStatus.PENDING,
        nullable=False,
    )
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    claim_token: Mapped[Optional[str]] = mapped_column(String(36))

    __table_args__ = (
        CheckConstraint("retry_count >= 0", name="ck_sched_notif_retry_non_negative"),
        CheckConstraint("max_retries >= 0", name="ck_sched_notif_max_retries_non_negative"),
        Index(
            "idx_sched_notif_due",
            "processed",
            "status",
            "scheduled_for",
        ),
        Index("idx_sched_notif_user_id", "user_id"),
        Index("idx_sched_notif_processed_at", "processed_at"),
    )


class Notification(Base, AuditMixin):
    """In-app notification record shown in the user's notification centre."""

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(36))
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    notification_type: Mapped[DeliveryChannel] = mapped_column(
        Enum(DeliveryChannel), default=DeliveryChannel.IN_APP, nullable=False
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notification_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata", JSON, default=dict
    )

    __table_args__ = (
        Index("idx_notifications_user_read", "user_id", "read"),
        Index("idx_notifications_created_at", "created_at"),
    )


class Subscriber(Base, AuditMixin):
    __tablename__ = "subscribers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[Optional[str]] = mapped_column(String(36))
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    subscribed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    subscription_tier: Mapped[Optional[str]] = mapped_column(String(50))
    is_trial_active: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    trial_start: Mapped[Optional[datetime]] = mapped_column(DateTime)
    trial_end: Mapped[Optional[datetime]] = mapped_column(DateTime)
    trial_reminder_3_days_sent: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    trial_reminder_1_day_sent: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("email", name="uq_subscribers_email"),
        Index("idx_subscribers_trial_active", "is_trial_active"),
    )


class SecurityEvent(Base, AuditMixin):
    __tablename__ = "security_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[Optional[str]] = mapped_column(String(36))
    # failed_auth, admin_action, unauthorized_access, suspicious_activity, rate_limit_violation
    event_name: Mapped[str] = mapped_column(String(64), nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45))
    severity: Mapped[SecuritySeverity] = mapped_column(
        Enum(SecuritySeverity), default=SecuritySeverity.LOW, nullable=False
    )
    event_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata", JSON, default=dict
    )

    __table_args__ = (
        Index("idx_security_events_created_at", "created_at"),
        Index("idx_security_events_name_created", "event_name", "created_at"),
        Index("idx_security_events_ip", "ip_address"),
    )


class CronReport(Base):
    __tablename__ = "cron_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_name: Mapped[str] = mapped_column(String(100), nullable=False)
    run_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[CronReportStatus] = mapped_column(
        Enum(CronReportStatus), nullable=False
    )
    message: Mapped[Optional[str]] = mapped_column(String(500))
    details: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (Index("idx_cron_reports_job_run", "job_name", "run_at"),)
