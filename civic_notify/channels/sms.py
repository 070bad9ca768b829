"""SMS channel client for the SMS gateway HTTP API."""

from typing import Any, Dict, Optional

import requests

from civic_notify.domain.models import NotificationChannel
from civic_notify.logging import get_logger

from .base import DEFAULT_TIMEOUT_SECONDS, ChannelClient
from .models import ChannelResult, ChannelTransportError, OutboundMessage
from .templates import MessageRenderer

logger = get_logger(__name__, component="channel")


class SMSClient(ChannelClient):
    """Sends text messages through ``POST {base_url}/sms/send``.

    The gateway authenticates with a bearer token and reports acceptance
    with ``"success": true`` in the JSON body; any other body counts as a
    rejection even when the HTTP status is 2xx.
    """

    channel = NotificationChannel.SMS

    def __init__(
        self,
        api_key: Optional[str],
        sender_id: Optional[str],
        base_url: Optional[str],
        callback_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        renderer: Optional[MessageRenderer] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(timeout=timeout, renderer=renderer, session=session)
        self.api_key = api_key
        self.sender_id = sender_id
        self.base_url = base_url.rstrip("/") if base_url else base_url
        self.callback_url = callback_url

    def is_available(self) -> bool:
        return bool(self.api_key and self.sender_id and self.base_url)

    @property
    def send_url(self) -> str:
        return f"{self.base_url}/sms/send"

    def send(self, message: OutboundMessage) -> ChannelResult:
        phone = message.payload.recipient_phone
        if not phone:
            return ChannelResult.failure(self.channel, "No phone number provided")

        text = self.renderer.render_sms(message.type, message.payload)

        body: Dict[str, Any] = {
            "to": phone,
            "message": text,
            "sender_id": self.sender_id,
        }
        if self.callback_url:
            body["callback_url"] = self.callback_url

        request_data = {"to": phone, "sender_id": self.sender_id, "length": len(text)}

        try:
            response = self._post_json(
                self.send_url,
                body,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except ChannelTransportError as e:
            return ChannelResult.failure(self.channel, str(e), request_data=request_data)

        data = self._json_body(response)
        accepted = (
            response.status_code < 400 and isinstance(data, dict) and data.get("success") is True
        )

        if not accepted:
            error = _gateway_error(data) or (
                f"HTTP {response.status_code}: {response.reason}"
                if response.status_code >= 400
                else "SMS gateway did not report success"
            )
            logger.warning(
                f"SMS gateway rejected message for {message.queue_id}: {error}",
                extra={
                    "event": "channel.sms.rejected",
                    "status_code": response.status_code,
                },
            )
            return ChannelResult.failure(
                self.channel, error, response_data=data, request_data=request_data
            )

        message_id = data.get("message_id")
        return ChannelResult(
            success=True,
            channel=self.channel,
            message_id=str(message_id) if message_id is not None else None,
            response_data=data,
            request_data=request_data,
        )


def _gateway_error(data: Optional[Any]) -> Optional[str]:
    if isinstance(data, dict):
        for key in ("message", "error"):
            if data.get(key):
                return str(data[key])
    return None
