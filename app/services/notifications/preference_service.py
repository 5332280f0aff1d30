from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.models import NotificationPreference, DEFAULT_NOTIFICATION_TYPES
from app.schemas.notification_schemas import ResolvedPreferences


def default_preferences() -> ResolvedPreferences:
    return ResolvedPreferences(
        email_notifications=True,
        notification_types=list(DEFAULT_NOTIFICATION_TYPES),
    )


class PreferenceService:
    """Read-only access to per-user notification preferences"""

    def __init__(self, db_session: Session):
        self.db = db_session

    async def resolve(self, user_id: str) -> ResolvedPreferences:
        """Return the user's preferences, or the defaults when no row exists."""
        preference = self.db.execute(
            select(NotificationPreference).where(
                NotificationPreference.user_id == user_id
            )
        ).scalar_one_or_none()

        if preference is None:
            return default_preferences()

        return ResolvedPreferences(
            email_notifications=bool(preference.email_notifications),
            notification_types=list(preference.notification_types or []),
        )
