from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.db.session import get_sync_session
from app.services.cron_report_service import CronReportService
from app.utils.context import set_request_id
from app.utils.logging import get_logger

JobBody = Callable[[Session], Awaitable[Dict[str, Any]]]


async def run_job(
    job_name: str,
    request_id: str,
    body: JobBody,
    success_message: str,
    db_session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Run one cron job body inside a database session and record a CronReport.

    Args:
        job_name: Name stored on the CronReport row
        request_id: The request ID for tracking (Celery Beat args or HTTP request)
        body: Coroutine function receiving the session and returning the job's counts
        success_message: Message returned when the body completes
        db_session: Existing session to use instead of opening a new one

    Returns:
        {"success": True, "message", "results", "request_id"} or
        {"success": False, "error", "request_id"} when the body raised
    """
    set_request_id(request_id)
    logger = get_logger().bind(request_id=request_id, job=job_name)

    sessions = [db_session] if db_session is not None else get_sync_session()
    for session in sessions:
        try:
            logger.info(f"Starting {job_name}")
            results = await body(session)
            result = {
                "success": True,
                "message": success_message,
                "results": results,
                "request_id": request_id,
            }
        except Exception as e:
            session.rollback()
            logger.exception(f"{job_name} failed: {str(e)}")
            result = {
                "success": False,
                "error": str(e),
                "request_id": request_id,
            }

        await CronReportService(session).record(job_name, result)
        return result
