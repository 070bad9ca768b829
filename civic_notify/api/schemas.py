"""Request and response bodies of the HTTP surface."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from civic_notify.domain.models import NotificationLogEntry, NotificationQueueEntry


class QueueNotificationRequest(BaseModel):
    """Request body for queueing a notification."""

    ticket_id: str = Field(..., min_length=1, description="Ticket the notification is about")
    type: str = Field(..., description="Notification type, e.g. TICKET_RECEIVED")
    recipient_name: str = Field(..., min_length=1, description="Citizen display name")
    recipient_phone: Optional[str] = Field(None, description="Phone number for SMS")
    recipient_email: Optional[str] = Field(None, description="Email address")
    template_data: Dict[str, Any] = Field(default_factory=dict)
    preferred_channel: Optional[str] = Field(
        None, description="Channel override: SMS, EMAIL or CHAT"
    )


class QueueNotificationResponse(BaseModel):
    queue_id: str


class NotificationLogView(BaseModel):
    channel: str
    status: str
    attempt_number: int
    error_message: Optional[str] = None
    response_data: Optional[Any] = None
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: NotificationLogEntry) -> "NotificationLogView":
        return cls(
            channel=entry.channel.value,
            status=entry.status.value,
            attempt_number=entry.attempt_number,
            error_message=entry.error_message,
            response_data=entry.response_data,
            created_at=entry.created_at,
        )


class NotificationView(BaseModel):
    """A queue row with its delivery attempts."""

    id: str
    ticket_id: str
    type: str
    channel: str
    preferred_channel: str
    recipient: Optional[str] = None
    status: str
    attempt_count: int
    max_attempts: int
    created_at: datetime
    scheduled_at: datetime
    last_attempt_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    error: Optional[str] = None
    last_error: Optional[str] = None
    message_id: Optional[str] = None
    logs: List[NotificationLogView] = Field(default_factory=list)

    @classmethod
    def from_entry(
        cls, entry: NotificationQueueEntry, logs: List[NotificationLogEntry]
    ) -> "NotificationView":
        return cls(
            id=entry.id,
            ticket_id=entry.ticket_id,
            type=entry.type.value,
            channel=entry.channel.value,
            preferred_channel=entry.preferred_channel.value,
            recipient=entry.recipient,
            status=entry.status.value,
            attempt_count=entry.attempt_count,
            max_attempts=entry.max_attempts,
            created_at=entry.created_at,
            scheduled_at=entry.scheduled_at,
            last_attempt_at=entry.last_attempt_at,
            sent_at=entry.sent_at,
            failed_at=entry.failed_at,
            error=entry.error,
            last_error=entry.last_error,
            message_id=entry.message_id,
            logs=[NotificationLogView.from_entry(log) for log in logs],
        )
