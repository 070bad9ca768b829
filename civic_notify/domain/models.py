"""Core domain models for notification delivery.

This module defines the data structures shared by the channels, the
dispatcher and the persistence layer:
- NotificationQueueEntry: one notification intent and its delivery state
- NotificationLogEntry: one delivery attempt (append-only audit trail)
- NotificationPayload: recipient contact details plus template data
- TicketSnapshot: read-only view of a ticket used by survey discovery
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from civic_notify.utils.timestamps import ensure_utc


class _NameLookupMixin:
    """Allow lookup by member name (including aliases) as well as value."""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper())
        return None


class NotificationChannel(_NameLookupMixin, str, Enum):
    """Delivery channels. The set is closed."""

    CHAT = "CHAT"
    SMS = "SMS"
    EMAIL = "EMAIL"

    # Name used by the ticket platform for the chat channel
    KAKAO = "CHAT"


class NotificationStatus(str, Enum):
    """Queue row status. SENT and FAILED are terminal."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not NotificationStatus.PENDING


class NotificationType(_NameLookupMixin, str, Enum):
    """Kinds of citizen notification."""

    TICKET_RECEIVED = "TICKET_RECEIVED"
    TICKET_ASSIGNED = "TICKET_ASSIGNED"
    TICKET_REPLIED = "TICKET_REPLIED"
    TICKET_CLOSED = "TICKET_CLOSED"
    STATUS_UPDATE = "STATUS_UPDATE"
    SLA_WARNING = "SLA_WARNING"
    SATISFACTION_REQUEST = "SATISFACTION_REQUEST"

    RECEIPT_CONFIRMATION = "TICKET_RECEIVED"
    REPLY_SENT = "TICKET_REPLIED"


class TicketStatus(str, Enum):
    """Ticket lifecycle states as stored by the ticket subsystem."""

    NEW = "NEW"
    IN_PROGRESS = "IN_PROGRESS"
    REPLIED = "REPLIED"
    CLOSED = "CLOSED"


class NotificationPayload(BaseModel):
    """Contact details and template data consumed by channel clients."""

    recipient_name: str = Field(..., description="Citizen display name")
    recipient_phone: Optional[str] = Field(None, description="Phone number for SMS")
    recipient_email: Optional[str] = Field(None, description="Email address")
    template_data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("recipient_phone", "recipient_email")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty or whitespace-only contact fields as absent."""
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None

    @property
    def has_contact(self) -> bool:
        return bool(self.recipient_phone or self.recipient_email)


class NotificationQueueEntry(BaseModel):
    """A notification intent and its current delivery state.

    ``channel`` is the channel currently targeted and changes when a
    fallback channel delivers. ``preferred_channel`` keeps the channel
    chosen at enqueue time.
    """

    id: str
    ticket_id: str
    type: NotificationType
    channel: NotificationChannel
    preferred_channel: NotificationChannel
    recipient: Optional[str] = None
    recipient_name: str
    recipient_phone: Optional[str] = None
    recipient_email: Optional[str] = None
    template_data: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatus = NotificationStatus.PENDING
    attempt_count: int = Field(0, ge=0)
    max_attempts: int = Field(3, ge=1)
    created_at: datetime
    scheduled_at: datetime
    last_attempt_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    claimed_until: Optional[datetime] = None
    error: Optional[str] = None
    last_error: Optional[str] = None
    message_id: Optional[str] = None
    response_data: Optional[Any] = None

    @field_validator(
        "created_at", "scheduled_at", "last_attempt_at", "sent_at", "failed_at", "claimed_until"
    )
    @classmethod
    def normalize_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def payload(self) -> NotificationPayload:
        return NotificationPayload(
            recipient_name=self.recipient_name,
            recipient_phone=self.recipient_phone,
            recipient_email=self.recipient_email,
            template_data=self.template_data,
        )

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_attempts - self.attempt_count, 0)


class NotificationLogEntry(BaseModel):
    """One delivery attempt through one channel. Never mutated."""

    id: Optional[int] = None
    queue_id: str
    channel: NotificationChannel
    status: NotificationStatus
    attempt_number: int = Field(..., ge=1)
    request_data: Optional[Any] = None
    response_data: Optional[Any] = None
    error_message: Optional[str] = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def normalize_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class TicketSnapshot(BaseModel):
    """Fields of a ticket that survey discovery reads."""

    id: str
    status: TicketStatus
    citizen_name: str
    citizen_phone: Optional[str] = None
    citizen_email: Optional[str] = None
    public_token: str
    replied_at: Optional[datetime] = None

    @field_validator("replied_at")
    @classmethod
    def normalize_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)
