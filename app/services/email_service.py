"""Transactional email delivery via SendGrid."""

import asyncio
import json
from typing import Any, Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from app.config.settings import settings
from app.utils.errors import EmailDeliveryError
from app.utils.logging import get_logger

logger = get_logger()


def extract_sendgrid_error_details(body: Any) -> Optional[str]:
    """Turn a SendGrid error payload into one readable line, or None when empty."""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        body = body.strip()
        if not body:
            return None
        try:
            body = json.loads(body)
        except json.JSONDecodeError:
            return body
    if not body:
        return None

    if isinstance(body, dict):
        messages = [
            f"{item['field']}: {item['message']}" if item.get("field") else str(item["message"])
            for item in body.get("errors") or []
            if isinstance(item, dict) and item.get("message")
        ]
        return "; ".join(messages) if messages else json.dumps(body, default=str)

    if isinstance(body, list):
        return "; ".join(str(item) for item in body)
    return str(body)


class EmailService:
    """Thin wrapper around the SendGrid client.

    Every failure is raised as EmailDeliveryError; callers decide whether a
    failed send is fatal for their unit of work.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_address: Optional[str] = None,
        from_name: Optional[str] = None,
        client: Optional[SendGridAPIClient] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.SENDGRID_API_KEY
        self.from_address = from_address or settings.EMAIL_FROM_ADDRESS
        self.from_name = from_name or settings.EMAIL_FROM_NAME
        self._client = client

    @property
    def client(self) -> SendGridAPIClient:
        if self._client is None:
            if not self.api_key:
                raise EmailDeliveryError(
                    "SendGrid API key is not configured", error_code="EMAIL_NOT_CONFIGURED"
                )
            self._client = SendGridAPIClient(self.api_key)
        return self._client

    def build_message(self, to: str, subject: str, html: str) -> Mail:
        return Mail(
            from_email=(self.from_address, self.from_name),
            to_emails=to,
            subject=subject,
            html_content=html,
        )

    async def send(self, to: str, subject: str, html: str) -> Optional[str]:
        """
        Send one HTML email.

        Returns:
            The provider message id when SendGrid reports one.

        Raises:
            EmailDeliveryError: configuration missing, transport failure or non-2xx response
        """
        if not to:
            raise EmailDeliveryError("Recipient address is empty", error_code="EMAIL_NO_RECIPIENT")

        message = self.build_message(to, subject, html)

        try:
            client = self.client
            # Send in thread pool since the SendGrid client is synchronous
            loop = asyncio.get_running_loop()
            response = await loop.run_in_executor(None, client.send, message)
        except EmailDeliveryError:
            raise
        except Exception as e:
            status_code = getattr(e, "status_code", None)
            details = extract_sendgrid_error_details(getattr(e, "body", None))
            raise EmailDeliveryError(
                f"SendGrid request failed: {details or str(e)}",
                status_code=status_code,
            ) from e

        status_code = getattr(response, "status_code", None)
        if not isinstance(status_code, int) or not 200 <= status_code < 300:
            details = extract_sendgrid_error_details(getattr(response, "body", None))
            raise EmailDeliveryError(
                f"SendGrid responded with status {status_code}"
                + (f": {details}" if details else ""),
                status_code=status_code,
            )

        headers = getattr(response, "headers", None) or {}
        message_id = headers.get("X-Message-Id") if hasattr(headers, "get") else None
        logger.info("Email sent", to=to, subject=subject, message_id=message_id)
        return message_id
