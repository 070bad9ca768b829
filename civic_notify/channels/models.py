"""Result types and exceptions shared by the channel clients.

Expected delivery failures are returned as data in a ChannelResult.
Exceptions are reserved for programmer errors such as a template that
cannot be rendered from the data it was given.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from civic_notify.domain.models import NotificationChannel, NotificationPayload, NotificationType


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when a message cannot be rendered due to missing or invalid template data."""

    pass


class ChannelTransportError(NotificationError):
    """Raised by a client's HTTP helper on network errors and timeouts.

    Clients catch it and turn it into a failed ChannelResult.
    """

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


@dataclass
class OutboundMessage:
    """A notification handed to a channel client for one send.

    Attributes:
        queue_id: Queue row the send belongs to
        ticket_id: Ticket the notification is about
        type: Kind of notification, selects the message template
        payload: Recipient contact details and template data
    """

    queue_id: str
    ticket_id: str
    type: NotificationType
    payload: NotificationPayload


@dataclass
class ChannelResult:
    """Normalized outcome of one send through one channel.

    Attributes:
        success: Whether the provider accepted the message
        channel: Channel that performed (or declined) the send
        message_id: Provider message identifier on success
        error: Failure reason on failure
        response_data: Provider response body or status, stored opaquely
        request_data: Redacted request summary, stored in the attempt log
    """

    success: bool
    channel: NotificationChannel
    message_id: Optional[str] = None
    error: Optional[str] = None
    response_data: Optional[Any] = None
    request_data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(
        cls,
        channel: NotificationChannel,
        error: str,
        response_data: Optional[Any] = None,
        request_data: Optional[Dict[str, Any]] = None,
    ) -> "ChannelResult":
        return cls(
            success=False,
            channel=channel,
            error=error,
            response_data=response_data,
            request_data=request_data or {},
        )
