from .request_id_middleware import *
from .cron_auth import *

__all__ = [
    "RequestIDMiddleware",
    "verify_cron_secret",
    "CRON_SECRET_HEADER",
]
