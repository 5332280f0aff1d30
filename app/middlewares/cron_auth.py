import hmac
from typing import Optional

from fastapi import Header

from app.config.settings import settings
from app.utils.errors import AuthenticationError

CRON_SECRET_HEADER = "X-Cron-Secret"


async def verify_cron_secret(
    x_cron_secret: Optional[str] = Header(default=None, alias=CRON_SECRET_HEADER),
) -> None:
    """Reject job triggers without the shared secret; open when CRON_SECRET is unset."""
    expected = settings.CRON_SECRET
    if not expected:
        return
    if not x_cron_secret or not hmac.compare_digest(
        x_cron_secret.encode("utf-8"), expected.encode("utf-8")
    ):
        raise AuthenticationError("Invalid or missing cron secret", "CRON_AUTH_FAILED")
