import pytest

from app.services.security_monitor_service import (
    SecurityMonitorService,
    alert_level_for,
    recommendations_for,
)


def _patterns(**counts) -> dict:
    patterns = {
        "repeated_failures": 0,
        "admin_access": 0,
        "unauthorized_access": 0,
        "suspicious_activity": 0,
        "rate_limit_violations": 0,
    }
    patterns.update(counts)
    return patterns


class TestAlertLevel:
    def test_thresholds(self):
        assert alert_level_for(_patterns()) == "normal"
        assert alert_level_for(_patterns(repeated_failures=10)) == "normal"
        assert alert_level_for(_patterns(repeated_failures=11)) == "high"
        assert alert_level_for(_patterns(unauthorized_access=6)) == "high"
        assert alert_level_for(_patterns(admin_access=21)) == "medium"
        assert alert_level_for(_patterns(suspicious_activity=4)) == "medium"
        assert alert_level_for(_patterns(suspicious_activity=4, unauthorized_access=6)) == "high"

    def test_recommendations(self):
        assert recommendations_for(_patterns()) == []
        assert len(recommendations_for(_patterns(repeated_failures=6))) == 2
        assert len(
            recommendations_for(
                _patterns(repeated_failures=6, unauthorized_access=3, admin_access=16)
            )
        ) == 6


class TestSecurityMonitorRun:
    @pytest.mark.asyncio
    async def test_counts_events_inside_window(
        self, db_session, clock, email_sender, make_security_events
    ):
        make_security_events("failed_auth", count=3)
        make_security_events("admin_action", count=2, ip_address=None)
        make_security_events("failed_auth", count=5, minutes_ago=120)
        make_security_events("login", count=4)

        report = await SecurityMonitorService(
            db_session, email_sender, window_minutes=60, alert_email="", clock=clock
        ).run()

        assert report["time_window"] == 60
        assert report["total_events"] == 9
        assert report["patterns"]["repeated_failures"] == 3
        assert report["patterns"]["admin_access"] == 2
        assert report["alert_level"] == "normal"
        assert report["alert_sent"] is False
        assert report["ip_summary"] == [
            {"ip_address": "203.0.113.7", "violations": 3, "flagged": False}
        ]

    @pytest.mark.asyncio
    async def test_high_alert_emails_security_contact(
        self, db_session, clock, email_sender, make_security_events
    ):
        make_security_events("failed_auth", count=11, ip_address="198.51.100.23")

        report = await SecurityMonitorService(
            db_session,
            email_sender,
            window_minutes=60,
            ip_block_threshold=10,
            alert_email="security@example.com",
            clock=clock,
        ).run()

        assert report["alert_level"] == "high"
        assert report["alert_sent"] is True
        assert [ip["ip_address"] for ip in report["flagged_ips"]] == ["198.51.100.23"]
        assert "Consider implementing stronger password policies" in report["recommendations"]

        assert len(email_sender.sent) == 1
        assert email_sender.sent[0]["to"] == "security@example.com"
        assert "high" in email_sender.sent[0]["subject"]
        assert "198.51.100.23" in email_sender.sent[0]["html"]

    @pytest.mark.asyncio
    async def test_medium_alert_does_not_email(
        self, db_session, clock, email_sender, make_security_events
    ):
        make_security_events("suspicious_activity", count=4)

        report = await SecurityMonitorService(
            db_session,
            email_sender,
            window_minutes=60,
            alert_email="security@example.com",
            clock=clock,
        ).run()

        assert report["alert_level"] == "medium"
        assert report["alert_sent"] is False
        assert email_sender.sent == []

    @pytest.mark.asyncio
    async def test_alert_email_failure_is_reported(
        self, db_session, clock, failing_email_sender, make_security_events
    ):
        make_security_events("unauthorized_access", count=6)

        report = await SecurityMonitorService(
            db_session,
            failing_email_sender(RuntimeError("SendGrid down")),
            window_minutes=60,
            alert_email="security@example.com",
            clock=clock,
        ).run()

        assert report["alert_level"] == "high"
        assert report["alert_sent"] is False
        assert report["alert_error"] == "SendGrid down"
