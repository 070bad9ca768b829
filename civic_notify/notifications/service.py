"""Notification intake and queue processing.

NotificationService is the entry point used by ticket lifecycle events:
it records a notification intent as a PENDING queue row and, by default,
makes the first delivery attempt straight away. Rows that fail are
picked up again by the pending sweep.
"""

import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from civic_notify.config.models import DispatchConfig
from civic_notify.domain.models import (
    NotificationChannel,
    NotificationLogEntry,
    NotificationQueueEntry,
    NotificationStatus,
    NotificationType,
)
from civic_notify.logging import get_logger
from civic_notify.logging.context import log_context
from civic_notify.persistence import (
    NotificationLogRepository,
    NotificationQueueRepository,
    get_session,
)
from civic_notify.utils.timestamps import utc_now

from .dispatcher import NotificationDispatcher
from .models import BatchResult
from .selector import recipient_for, select_channel

logger = get_logger(__name__, component="notification")


def new_queue_id() -> str:
    return f"ntf_{uuid.uuid4().hex}"


def build_queue_entry(
    ticket_id: str,
    notification_type: Union[NotificationType, str],
    recipient_name: str,
    recipient_phone: Optional[str] = None,
    recipient_email: Optional[str] = None,
    template_data: Optional[Dict[str, Any]] = None,
    preferred_channel: Optional[Union[NotificationChannel, str]] = None,
    max_attempts: int = 3,
    now: Optional[datetime] = None,
    scheduled_at: Optional[datetime] = None,
) -> NotificationQueueEntry:
    """Build a new PENDING queue entry with its channel selected.

    Raises:
        ValueError: If ticket_id or recipient_name is blank, or the type or
            channel is unknown
    """
    if not ticket_id or not str(ticket_id).strip():
        raise ValueError("ticket_id is required")
    if not recipient_name or not recipient_name.strip():
        raise ValueError("recipient_name is required")

    notification_type = NotificationType(notification_type)
    override = NotificationChannel(preferred_channel) if preferred_channel else None

    phone = (recipient_phone or "").strip() or None
    email = (recipient_email or "").strip() or None
    channel = select_channel(phone, email, override)
    now = now or utc_now()

    return NotificationQueueEntry(
        id=new_queue_id(),
        ticket_id=str(ticket_id).strip(),
        type=notification_type,
        channel=channel,
        preferred_channel=channel,
        recipient=recipient_for(channel, phone, email),
        recipient_name=recipient_name.strip(),
        recipient_phone=phone,
        recipient_email=email,
        template_data=dict(template_data or {}),
        status=NotificationStatus.PENDING,
        attempt_count=0,
        max_attempts=max_attempts,
        created_at=now,
        scheduled_at=scheduled_at or now,
    )


class NotificationService:
    """Queues notifications and drives their delivery.

    Args:
        dispatcher: Dispatcher used for immediate and swept attempts
        config: Dispatch settings (attempt cap, batch size, immediate dispatch)
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        config: Optional[DispatchConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.dispatcher = dispatcher
        self.config = config or DispatchConfig()
        self._clock = clock

    def queue_notification(
        self,
        ticket_id: str,
        type: Union[NotificationType, str],
        recipient_name: str,
        recipient_phone: Optional[str] = None,
        recipient_email: Optional[str] = None,
        template_data: Optional[Dict[str, Any]] = None,
        preferred_channel: Optional[Union[NotificationChannel, str]] = None,
    ) -> str:
        """Record a notification intent and return its queue id.

        The channel is the override when given, else SMS when a phone
        number is present, else EMAIL. When ``dispatch_on_enqueue`` is set
        the first attempt is made before returning; its outcome (including
        any error) is recorded on the row and never raised here.

        Raises:
            ValueError: If the input cannot describe a notification
            PersistenceError: If the row cannot be stored
        """
        entry = build_queue_entry(
            ticket_id,
            type,
            recipient_name,
            recipient_phone=recipient_phone,
            recipient_email=recipient_email,
            template_data=template_data,
            preferred_channel=preferred_channel,
            max_attempts=self.config.max_attempts,
            now=self._clock(),
        )

        with log_context(queue_id=entry.id, ticket_id=entry.ticket_id):
            with get_session() as session:
                NotificationQueueRepository(session).create(entry)

            logger.info(
                f"Queued {entry.type.value} notification via {entry.channel.value}",
                extra={
                    "event": "notification.queued",
                    "notification_type": entry.type.value,
                    "channel": entry.channel.value,
                },
            )

            if self.config.dispatch_on_enqueue:
                self._dispatch_now(entry.id)

        return entry.id

    def _dispatch_now(self, queue_id: str) -> None:
        try:
            self.dispatcher.dispatch(queue_id)
        except Exception as e:
            # The row stays queued for the pending sweep
            logger.error(
                f"Immediate dispatch of {queue_id} failed: {e}",
                exc_info=True,
                extra={"event": "notification.dispatch_error", "error_type": type(e).__name__},
            )

    def process_pending(self, limit: Optional[int] = None) -> BatchResult:
        """Dispatch the next batch of PENDING rows that are due.

        Args:
            limit: Batch size (defaults to ``dispatch.batch_size``)
        """
        with get_session() as session:
            entries = NotificationQueueRepository(session).list_pending(
                self._clock(), limit or self.config.batch_size
            )

        if not entries:
            logger.debug("No pending notifications", extra={"event": "notification.queue_empty"})
            return BatchResult()

        return self.dispatcher.dispatch_many([entry.id for entry in entries])

    def get_notification(
        self, queue_id: str
    ) -> Tuple[NotificationQueueEntry, List[NotificationLogEntry]]:
        """Return a queue row with its delivery attempts.

        Raises:
            RecordNotFoundError: If the row does not exist
        """
        with get_session() as session:
            entry = NotificationQueueRepository(session).require(queue_id)
            logs = NotificationLogRepository(session).list_for_queue(queue_id)
        return entry, logs
