"""Domain models for notifications and the ticket mirror."""

from .models import (
    NotificationChannel,
    NotificationLogEntry,
    NotificationPayload,
    NotificationQueueEntry,
    NotificationStatus,
    NotificationType,
    TicketSnapshot,
    TicketStatus,
)

__all__ = [
    "NotificationChannel",
    "NotificationStatus",
    "NotificationType",
    "TicketStatus",
    "NotificationPayload",
    "NotificationQueueEntry",
    "NotificationLogEntry",
    "TicketSnapshot",
]
