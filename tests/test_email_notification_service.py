import pytest
import uuid
from datetime import date, datetime

from app.db.models import DeliveryChannel, Notification
from app.schemas.notification_schemas import EmailNotificationPayload
from app.services.notifications.email_notification_service import EmailNotificationService
from app.templates.email_templates import format_money, format_us_date
from app.utils.errors import EmailDeliveryError


def _payload(**overrides) -> EmailNotificationPayload:
    data = {
        "notification_id": str(uuid.uuid4()),
        "user_email": "owner@example.com",
        "title": "Annual report due",
        "message": "Your annual report is due soon.",
        "notification_type": "renewal_reminder",
        "entity_name": "Acme Holdings LLC",
        "due_date": "2026-03-15",
        "amount": 1500,
    }
    data.update(overrides)
    return EmailNotificationPayload(**data)


def _notification(db_session, notification_id: str) -> Notification:
    notification = Notification(
        id=notification_id,
        user_id="user-1",
        type="renewal_reminder",
        title="Annual report due",
        message="Your annual report is due soon.",
        notification_type=DeliveryChannel.BOTH,
        timestamp=datetime(2025, 6, 1, 12, 0),
    )
    db_session.add(notification)
    db_session.flush()
    return notification


class TestFilters:
    def test_us_date(self):
        assert format_us_date("2026-03-15") == "3/15/2026"
        assert format_us_date("2026-03-15T10:00:00Z") == "3/15/2026"
        assert format_us_date(date(2025, 12, 1)) == "12/1/2025"
        assert format_us_date(datetime(2025, 7, 4, 9, 30)) == "7/4/2025"

    def test_us_date_passes_through_unparseable_text(self):
        assert format_us_date("end of quarter") == "end of quarter"

    def test_money(self):
        assert format_money(1500) == "$1,500.00"
        assert format_money("99.5") == "$99.50"

    def test_money_passes_through_non_numeric_text(self):
        assert format_money("call us") == "call us"
        assert format_money("$1,250.00") == "$1,250.00"


class TestRender:
    def test_renewal_details_block(self, db_session, email_sender):
        rendered = EmailNotificationService(db_session, email_sender).render(_payload())

        assert rendered["subject"] == "Annual report due"
        assert "Renewal Details" in rendered["html"]
        assert "#e3f2fd" in rendered["html"]
        assert "Acme Holdings LLC" in rendered["html"]
        assert "3/15/2026" in rendered["html"]
        assert "$1,500.00" in rendered["html"]

    def test_payment_details_block(self, db_session, email_sender):
        rendered = EmailNotificationService(db_session, email_sender).render(
            _payload(notification_type="payment_due", due_date=None)
        )

        assert "Payment Details" in rendered["html"]
        assert "#fff3e0" in rendered["html"]
        assert "Due Date" not in rendered["html"]

    def test_no_details_block_without_entity_or_for_other_types(
        self, db_session, email_sender
    ):
        service = EmailNotificationService(db_session, email_sender)

        without_entity = service.render(_payload(entity_name=None))
        compliance = service.render(_payload(notification_type="compliance_check"))

        for rendered in (without_entity, compliance):
            assert "Renewal Details" not in rendered["html"]
            assert "Payment Details" not in rendered["html"]
        assert "Your annual report is due soon." in compliance["html"]

    def test_user_content_is_html_escaped(self, db_session, email_sender):
        rendered = EmailNotificationService(db_session, email_sender).render(
            _payload(
                title="<script>alert(1)</script>",
                message="Tom & Jerry <b>LLC</b>",
                entity_name='"Evil" <img src=x>',
            )
        )

        assert "<script>" not in rendered["html"]
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in rendered["html"]
        assert "Tom &amp; Jerry &lt;b&gt;LLC&lt;/b&gt;" in rendered["html"]
        assert "<img src=x>" not in rendered["html"]
        # The subject is plain text, not HTML
        assert rendered["subject"] == "<script>alert(1)</script>"


class TestSendNotificationEmail:
    @pytest.mark.asyncio
    async def test_success_flags_notification(self, db_session, email_sender):
        payload = _payload()
        notification = _notification(db_session, payload.notification_id)

        message_id = await EmailNotificationService(
            db_session, email_sender
        ).send_notification_email(payload)

        assert message_id == "msg-1"
        assert notification.email_sent is True
        assert notification.sent_at is not None
        assert email_sender.sent[0]["to"] == "owner@example.com"

    @pytest.mark.asyncio
    async def test_failure_records_error_and_raises(
        self, db_session, failing_email_sender
    ):
        payload = _payload()
        notification = _notification(db_session, payload.notification_id)
        sender = failing_email_sender(RuntimeError("connection reset"))

        with pytest.raises(EmailDeliveryError, match="connection reset"):
            await EmailNotificationService(db_session, sender).send_notification_email(
                payload
            )

        assert notification.email_sent is False
        assert notification.retry_count == 1
        assert notification.notification_metadata["email_error"] == "connection reset"


class TestPayload:
    def test_blank_amount_is_none(self):
        assert _payload(amount="").amount is None

    def test_accepts_camel_case_keys(self):
        payload = EmailNotificationPayload(
            notificationId="n-1",
            userEmail="owner@example.com",
            title="t",
            message="m",
            notificationType="payment_due",
        )
        assert payload.notification_id == "n-1"
        assert payload.notification_type == "payment_due"

    def test_formatted_amount_string_is_parsed(self):
        assert _payload(amount="$1,250.00").amount == 1250.0
        assert _payload(amount=" 99.5 ").amount == 99.5

    def test_unparseable_amount_is_dropped(self):
        assert _payload(amount="call us").amount is None
        assert _payload(amount={"value": 10}).amount is None
        assert _payload(amount=True).amount is None

    def test_non_string_entity_and_due_date_become_text(self):
        payload = _payload(entity_name=42, due_date=20260315)

        assert payload.entity_name == "42"
        assert payload.due_date == "20260315"
