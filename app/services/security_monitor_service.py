from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.models import SecurityEvent
from app.services.notifications.email_notification_service import EmailSender
from app.templates.email_templates import SECURITY_ALERT_TEMPLATE, render_email
from app.utils.datetime_utils import naive_utc_now
from app.utils.logging import get_logger

logger = get_logger()

TRACKED_EVENTS = {
    "failed_auth": "repeated_failures",
    "admin_action": "admin_access",
    "unauthorized_access": "unauthorized_access",
    "suspicious_activity": "suspicious_activity",
    "rate_limit_violation": "rate_limit_violations",
}
# Events that count against an IP's reputation
IP_VIOLATION_EVENTS = {
    "failed_auth",
    "unauthorized_access",
    "suspicious_activity",
    "rate_limit_violation",
}


def alert_level_for(patterns: Dict[str, int]) -> str:
    if patterns["repeated_failures"] > 10 or patterns["unauthorized_access"] > 5:
        return "high"
    if patterns["admin_access"] > 20 or patterns["suspicious_activity"] > 3:
        return "medium"
    return "normal"


def recommendations_for(patterns: Dict[str, int]) -> List[str]:
    recommendations = []

    if patterns["repeated_failures"] > 5:
        recommendations.append("Consider implementing stronger password policies")
        recommendations.append("Enable two-factor authentication for all users")

    if patterns["unauthorized_access"] > 2:
        recommendations.append("Review and tighten access control policies")
        recommendations.append("Audit user permissions and roles")

    if patterns["admin_access"] > 15:
        recommendations.append(
            "Implement additional approval workflows for admin actions"
        )
        recommendations.append(
            "Consider time-based session restrictions for admin users"
        )

    return recommendations


class SecurityMonitorService:
    """Threshold checks over the security event log"""

    def __init__(
        self,
        db_session: Session,
        email_sender: Optional[EmailSender] = None,
        window_minutes: Optional[int] = None,
        ip_block_threshold: Optional[int] = None,
        alert_email: Optional[str] = None,
        clock: Callable[[], datetime] = naive_utc_now,
    ):
        self.db = db_session
        self.email_sender = email_sender
        self.window_minutes = window_minutes or settings.SECURITY_MONITOR_WINDOW_MINUTES
        self.ip_block_threshold = (
            ip_block_threshold or settings.SECURITY_IP_BLOCK_THRESHOLD
        )
        self.alert_email = (
            alert_email if alert_email is not None else settings.SECURITY_ALERT_EMAIL
        )
        self.clock = clock

    async def fetch_events(self, since: datetime) -> List[SecurityEvent]:
        return list(
            self.db.scalars(
                select(SecurityEvent)
                .where(SecurityEvent.created_at >= since)
                .order_by(SecurityEvent.created_at.desc())
            ).all()
        )

    def summarize_ips(self, events: List[SecurityEvent]) -> List[Dict[str, Any]]:
        violations = Counter(
            event.ip_address
            for event in events
            if event.ip_address and event.event_name in IP_VIOLATION_EVENTS
        )
        return [
            {
                "ip_address": ip,
                "violations": count,
                "flagged": count >= self.ip_block_threshold,
            }
            for ip, count in violations.most_common()
        ]

    async def check_patterns(self) -> Dict[str, Any]:
        events = await self.fetch_events(
            self.clock() - timedelta(minutes=self.window_minutes)
        )
        counts = Counter(event.event_name for event in events)
        patterns = {label: counts.get(name, 0) for name, label in TRACKED_EVENTS.items()}
        ips = self.summarize_ips(events)

        return {
            "time_window": self.window_minutes,
            "patterns": patterns,
            "total_events": len(events),
            "alert_level": alert_level_for(patterns),
            "recommendations": recommendations_for(patterns),
            "flagged_ips": [ip for ip in ips if ip["flagged"]],
            "ip_summary": ips,
        }

    async def send_alert(self, report: Dict[str, Any]) -> None:
        html = render_email(
            SECURITY_ALERT_TEMPLATE,
            brand_name=settings.EMAIL_FROM_NAME,
            header_background="#ffebee",
            alert_level=report["alert_level"],
            total_events=report["total_events"],
            window_minutes=report["time_window"],
            patterns=report["patterns"],
            flagged_ips=report["flagged_ips"],
            recommendations=report["recommendations"],
        )
        await self.email_sender.send(
            to=self.alert_email,
            subject=f"Security alert: {report['alert_level']} activity detected",
            html=html,
        )

    async def run(self) -> Dict[str, Any]:
        report = await self.check_patterns()
        report["alert_sent"] = False

        if report["alert_level"] == "high":
            logger.warning(
                "High security alert level",
                patterns=report["patterns"],
                flagged_ips=[ip["ip_address"] for ip in report["flagged_ips"]],
            )
            if self.alert_email and self.email_sender is not None:
                try:
                    await self.send_alert(report)
                    report["alert_sent"] = True
                except Exception as e:
                    logger.error("Failed to send security alert", error=str(e))
                    report["alert_error"] = str(e)

        logger.info(
            "Security pattern check complete",
            alert_level=report["alert_level"],
            total_events=report["total_events"],
        )
        return report
