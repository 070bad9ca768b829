"""Database schema definition and ORM models.

Two tables belong to this service: ``notification_queue`` (one row per
notification intent) and ``notification_log`` (one row per delivery
attempt). ``tickets`` and ``satisfaction_surveys`` mirror the columns of
the ticket subsystem that survey discovery reads.

Timestamps are stored as fixed-width ISO 8601 UTC strings, so range and
ordering comparisons work on the raw column values.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, ForeignKey, Index, Integer, String, Text, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from civic_notify.domain.models import (
    NotificationChannel,
    NotificationLogEntry,
    NotificationQueueEntry,
    NotificationStatus,
    NotificationType,
    TicketSnapshot,
    TicketStatus,
)
from civic_notify.utils.timestamps import format_timestamp, parse_iso_datetime

logger = logging.getLogger(__name__)

Base = declarative_base()

_SURVEY_ROW_PREDICATE = text("type = 'SATISFACTION_REQUEST'")


class NotificationQueueModel(Base):
    """ORM model for notification_queue table."""

    __tablename__ = "notification_queue"

    id = Column(String(40), primary_key=True, nullable=False)
    ticket_id = Column(String(64), nullable=False)
    type = Column(String(40), nullable=False)

    # Channel routing
    channel = Column(String(16), nullable=False)
    preferred_channel = Column(String(16), nullable=False)
    recipient = Column(String(255), nullable=True)

    # Payload
    recipient_name = Column(String(255), nullable=False)
    recipient_phone = Column(String(32), nullable=True)
    recipient_email = Column(String(255), nullable=True)
    template_data = Column(JSON, nullable=False, default=dict)

    # Delivery state
    status = Column(String(16), nullable=False, default=NotificationStatus.PENDING.value)
    attempt_count = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    claimed_until = Column(String(50), nullable=True)
    error = Column(Text, nullable=True)
    last_error = Column(Text, nullable=True)
    message_id = Column(String(255), nullable=True)
    response_data = Column(JSON, nullable=True)

    # Timestamps
    created_at = Column(String(50), nullable=False)
    scheduled_at = Column(String(50), nullable=False)
    last_attempt_at = Column(String(50), nullable=True)
    sent_at = Column(String(50), nullable=True)
    failed_at = Column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_queue_status_scheduled", "status", "scheduled_at"),
        Index("idx_queue_ticket", "ticket_id"),
        # At most one satisfaction survey request per ticket
        Index(
            "uq_queue_survey_per_ticket",
            "ticket_id",
            unique=True,
            sqlite_where=_SURVEY_ROW_PREDICATE,
            postgresql_where=_SURVEY_ROW_PREDICATE,
        ),
    )

    def to_domain(self) -> NotificationQueueEntry:
        """Convert ORM model to domain model."""
        return NotificationQueueEntry(
            id=self.id,
            ticket_id=self.ticket_id,
            type=NotificationType(self.type),
            channel=NotificationChannel(self.channel),
            preferred_channel=NotificationChannel(self.preferred_channel),
            recipient=self.recipient,
            recipient_name=self.recipient_name,
            recipient_phone=self.recipient_phone,
            recipient_email=self.recipient_email,
            template_data=self.template_data or {},
            status=NotificationStatus(self.status),
            attempt_count=self.attempt_count,
            max_attempts=self.max_attempts,
            created_at=parse_iso_datetime(self.created_at),
            scheduled_at=parse_iso_datetime(self.scheduled_at),
            last_attempt_at=parse_iso_datetime(self.last_attempt_at),
            sent_at=parse_iso_datetime(self.sent_at),
            failed_at=parse_iso_datetime(self.failed_at),
            claimed_until=parse_iso_datetime(self.claimed_until),
            error=self.error,
            last_error=self.last_error,
            message_id=self.message_id,
            response_data=self.response_data,
        )

    @classmethod
    def from_domain(cls, entry: NotificationQueueEntry) -> "NotificationQueueModel":
        """Create ORM model from domain model."""
        return cls(
            id=entry.id,
            ticket_id=entry.ticket_id,
            type=entry.type.value,
            channel=entry.channel.value,
            preferred_channel=entry.preferred_channel.value,
            recipient=entry.recipient,
            recipient_name=entry.recipient_name,
            recipient_phone=entry.recipient_phone,
            recipient_email=entry.recipient_email,
            template_data=entry.template_data,
            status=entry.status.value,
            attempt_count=entry.attempt_count,
            max_attempts=entry.max_attempts,
            created_at=format_timestamp(entry.created_at),
            scheduled_at=format_timestamp(entry.scheduled_at),
            last_attempt_at=format_timestamp(entry.last_attempt_at),
            sent_at=format_timestamp(entry.sent_at),
            failed_at=format_timestamp(entry.failed_at),
            claimed_until=format_timestamp(entry.claimed_until),
            error=entry.error,
            last_error=entry.last_error,
            message_id=entry.message_id,
            response_data=entry.response_data,
        )


class NotificationLogModel(Base):
    """ORM model for notification_log table. Rows are insert-only."""

    __tablename__ = "notification_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    queue_id = Column(String(40), ForeignKey("notification_queue.id"), nullable=False)
    channel = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False)
    attempt_number = Column(Integer, nullable=False)
    request_data = Column(JSON, nullable=True)
    response_data = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_log_queue", "queue_id"),)

    def to_domain(self) -> NotificationLogEntry:
        """Convert ORM model to domain model."""
        return NotificationLogEntry(
            id=self.id,
            queue_id=self.queue_id,
            channel=NotificationChannel(self.channel),
            status=NotificationStatus(self.status),
            attempt_number=self.attempt_number,
            request_data=self.request_data,
            response_data=self.response_data,
            error_message=self.error_message,
            created_at=parse_iso_datetime(self.created_at),
        )

    @classmethod
    def from_domain(cls, entry: NotificationLogEntry) -> "NotificationLogModel":
        """Create ORM model from domain model (id is assigned by the database)."""
        return cls(
            queue_id=entry.queue_id,
            channel=entry.channel.value,
            status=entry.status.value,
            attempt_number=entry.attempt_number,
            request_data=entry.request_data,
            response_data=entry.response_data,
            error_message=entry.error_message,
            created_at=format_timestamp(entry.created_at),
        )


class TicketModel(Base):
    """Mirror of the ticket subsystem's tickets table (read-only here)."""

    __tablename__ = "tickets"

    id = Column(String(64), primary_key=True, nullable=False)
    status = Column(String(20), nullable=False)
    citizen_name = Column(String(255), nullable=False)
    citizen_phone = Column(String(32), nullable=True)
    citizen_email = Column(String(255), nullable=True)
    public_token = Column(String(64), nullable=False, unique=True)
    replied_at = Column(String(50), nullable=True)

    __table_args__ = (Index("idx_tickets_status_replied", "status", "replied_at"),)

    def to_domain(self) -> TicketSnapshot:
        """Convert ORM model to domain model."""
        return TicketSnapshot(
            id=self.id,
            status=TicketStatus(self.status),
            citizen_name=self.citizen_name,
            citizen_phone=self.citizen_phone,
            citizen_email=self.citizen_email,
            public_token=self.public_token,
            replied_at=parse_iso_datetime(self.replied_at),
        )


class SatisfactionSurveyModel(Base):
    """Mirror of the satisfaction survey table.

    ``channel_sent_at`` marks that a survey request has been queued for
    the ticket.
    """

    __tablename__ = "satisfaction_surveys"

    id = Column(String(40), primary_key=True, nullable=False)
    ticket_id = Column(String(64), ForeignKey("tickets.id"), nullable=False, unique=True)
    rating = Column(Integer, nullable=True)
    channel_sent_at = Column(String(50), nullable=True)


def to_db_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime the way timestamp columns store it."""
    return format_timestamp(dt, include_microseconds=True)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent).

    Args:
        engine: SQLAlchemy engine instance
    """
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(sorted(tables))}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
