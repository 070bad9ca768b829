"""Email channel client for the SendGrid v3 mail send API."""

from typing import Any, Dict, Optional

import requests
from email_validator import EmailNotValidError, validate_email

from civic_notify.domain.models import NotificationChannel
from civic_notify.logging import get_logger

from .base import DEFAULT_TIMEOUT_SECONDS, ChannelClient
from .models import ChannelResult, ChannelTransportError, OutboundMessage
from .templates import MessageRenderer

logger = get_logger(__name__, component="channel")

SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailClient(ChannelClient):
    """Sends HTML + plain-text email through SendGrid.

    SendGrid answers ``202 Accepted`` with an empty body; the message id
    is returned in the ``X-Message-Id`` response header.
    """

    channel = NotificationChannel.EMAIL

    def __init__(
        self,
        api_key: Optional[str],
        from_email: Optional[str],
        from_name: str = "CivicAid",
        api_url: str = SENDGRID_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        renderer: Optional[MessageRenderer] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(timeout=timeout, renderer=renderer, session=session)
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.api_url = api_url

    def is_available(self) -> bool:
        return bool(self.api_key and self.from_email)

    def send(self, message: OutboundMessage) -> ChannelResult:
        address = message.payload.recipient_email
        if not address:
            return ChannelResult.failure(self.channel, "No email address provided")

        try:
            recipient = validate_email(address, check_deliverability=False).normalized
        except EmailNotValidError as e:
            return ChannelResult.failure(
                self.channel,
                f"Invalid email address '{address}': {e}",
                request_data={"to": address},
            )

        rendered = self.renderer.render_email(message.type, message.payload)
        body = self._build_body(recipient, message.payload.recipient_name, rendered)
        request_data = {"to": recipient, "subject": rendered["subject"]}

        try:
            response = self._post_json(
                self.api_url,
                body,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except ChannelTransportError as e:
            return ChannelResult.failure(self.channel, str(e), request_data=request_data)

        if response.status_code >= 400:
            data = self._json_body(response)
            error = _sendgrid_error(data) or f"HTTP {response.status_code}: {response.reason}"
            logger.warning(
                f"SendGrid rejected message for {message.queue_id}: {error}",
                extra={
                    "event": "channel.email.rejected",
                    "status_code": response.status_code,
                },
            )
            return ChannelResult.failure(
                self.channel, error, response_data=data, request_data=request_data
            )

        return ChannelResult(
            success=True,
            channel=self.channel,
            message_id=response.headers.get("X-Message-Id"),
            response_data={"status_code": response.status_code},
            request_data=request_data,
        )

    def _build_body(
        self, recipient: str, recipient_name: str, rendered: Dict[str, str]
    ) -> Dict[str, Any]:
        to: Dict[str, str] = {"email": recipient}
        if recipient_name:
            to["name"] = recipient_name

        return {
            "personalizations": [{"to": [to]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": rendered["subject"],
            "content": [
                {"type": "text/plain", "value": rendered["text_body"]},
                {"type": "text/html", "value": rendered["html_body"]},
            ],
        }


def _sendgrid_error(data: Optional[Any]) -> Optional[str]:
    """Join the messages of a SendGrid ``{"errors": [...]}`` body."""
    if not isinstance(data, dict):
        return None
    messages = [
        str(item.get("message"))
        for item in data.get("errors") or []
        if isinstance(item, dict) and item.get("message")
    ]
    return "; ".join(messages) or None
