import json
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.db.models import CronReport, CronReportStatus
from app.utils.datetime_utils import naive_utc_now
from app.utils.logging import get_logger

logger = get_logger()


def status_for(result: Dict[str, Any]) -> CronReportStatus:
    if not result.get("success"):
        return CronReportStatus.FAILED
    results = result.get("results") or {}
    errors = results.get("errors")
    if errors:
        return CronReportStatus.PARTIAL
    return CronReportStatus.SUCCESS


class CronReportService:
    """Keeps one CronReport row per job invocation"""

    def __init__(self, db_session: Session):
        self.db = db_session

    async def record(
        self, job_name: str, result: Dict[str, Any], message: Optional[str] = None
    ) -> Optional[CronReport]:
        report = CronReport(
            job_name=job_name,
            run_at=naive_utc_now(),
            status=status_for(result),
            message=(message or result.get("message") or result.get("error") or "")[:500],
            details=json.dumps(result, default=str),
        )
        try:
            self.db.add(report)
            self.db.commit()
        except Exception as e:
            # the job result stands even when its ledger entry cannot be written
            self.db.rollback()
            logger.error(f"Failed to record cron report for {job_name}: {str(e)}")
            return None
        return report
