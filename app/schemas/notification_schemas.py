from typing import List, Optional
from pydantic import Field, field_validator

from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


class EmailNotificationPayload(BaseModel):
    """Data handed from the dispatcher to the email notification renderer."""

    notification_id: str = Field(..., description="In-app notification ID")
    user_email: str = Field(..., description="Recipient email address")
    title: str = Field(..., description="Notification title, used as subject")
    message: str = Field(..., description="Notification body text")
    notification_type: str = Field(..., description="Notification type code")
    entity_name: Optional[str] = Field(None, description="Related entity name")
    due_date: Optional[str] = Field(None, description="Due date in ISO format")
    amount: Optional[float] = Field(None, description="Amount due in dollars")

    @field_validator("entity_name", "due_date", mode="before")
    def coerce_text(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("amount", mode="before")
    def coerce_amount(cls, v):
        """Accepts numbers and display strings like "$1,250.00"; anything else is dropped."""
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, str):
            v = v.replace("$", "").replace(",", "").strip()
            if not v:
                return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None


class ResolvedPreferences(BaseModel):
    """A user's notification preferences with defaults applied."""

    email_notifications: bool = Field(True, description="Email channel enabled")
    notification_types: List[str] = Field(
        default_factory=list, description="Subscribed notification type codes"
    )

    def wants_email_for(self, notification_type: str) -> bool:
        return self.email_notifications and notification_type in self.notification_types
