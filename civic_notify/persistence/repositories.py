"""Data access layer (repositories) for persistence operations.

Repositories wrap a SQLAlchemy session and return domain models rather
than ORM models. State transitions on queue rows are conditional UPDATE
statements guarded on ``status = PENDING`` so a terminal row can never
be re-opened.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from civic_notify.domain.models import (
    NotificationChannel,
    NotificationLogEntry,
    NotificationQueueEntry,
    NotificationStatus,
    NotificationType,
    TicketSnapshot,
    TicketStatus,
)

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import (
    NotificationLogModel,
    NotificationQueueModel,
    SatisfactionSurveyModel,
    TicketModel,
    to_db_timestamp,
)

logger = logging.getLogger(__name__)

_PENDING = NotificationStatus.PENDING.value


def _lease_is_free(now_str: str):
    return or_(
        NotificationQueueModel.claimed_until.is_(None),
        NotificationQueueModel.claimed_until <= now_str,
    )


class NotificationQueueRepository:
    """Repository for notification queue rows."""

    def __init__(self, session: Session):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def create(self, entry: NotificationQueueEntry) -> NotificationQueueEntry:
        """Insert a new queue row.

        Raises:
            DataIntegrityError: If a constraint is violated
            PersistenceError: If database error occurs
        """
        try:
            model = NotificationQueueModel.from_domain(entry)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error creating notification {entry.id}: {e}", exc_info=True)
            raise DataIntegrityError(
                f"Failed to create notification due to constraint violation: {e}"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating notification {entry.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create notification: {e}") from e

    def get(self, queue_id: str) -> Optional[NotificationQueueEntry]:
        """Retrieve a queue row by id, always reading current database state.

        Returns:
            NotificationQueueEntry if found, None otherwise

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                select(NotificationQueueModel)
                .where(NotificationQueueModel.id == queue_id)
                .execution_options(populate_existing=True)
            )
            model = self.session.execute(stmt).scalar_one_or_none()
            return model.to_domain() if model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving notification {queue_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve notification: {e}") from e

    def require(self, queue_id: str) -> NotificationQueueEntry:
        """Like get(), but raise RecordNotFoundError when the row is missing."""
        entry = self.get(queue_id)
        if entry is None:
            raise RecordNotFoundError(f"Notification {queue_id} not found")
        return entry

    def find_survey_request(self, ticket_id: str) -> Optional[NotificationQueueEntry]:
        """Return the satisfaction survey request queued for a ticket, if any."""
        try:
            stmt = select(NotificationQueueModel).where(
                NotificationQueueModel.ticket_id == ticket_id,
                NotificationQueueModel.type == NotificationType.SATISFACTION_REQUEST.value,
            )
            model = self.session.execute(stmt).scalars().first()
            return model.to_domain() if model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error looking up survey request for {ticket_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to look up survey request: {e}") from e

    def create_survey_request(
        self, entry: NotificationQueueEntry
    ) -> Optional[NotificationQueueEntry]:
        """Insert a survey request unless one already exists for the ticket.

        The insert runs in a savepoint. A unique index violation means
        another run queued the request first; the savepoint is rolled
        back and None is returned.

        Raises:
            PersistenceError: If database error occurs
        """
        if self.find_survey_request(entry.ticket_id) is not None:
            return None

        model = NotificationQueueModel.from_domain(entry)
        try:
            with self.session.begin_nested():
                self.session.add(model)
            return model.to_domain()

        except IntegrityError:
            logger.info(
                f"Survey request for ticket {entry.ticket_id} already queued",
                extra={"event": "survey.duplicate_discarded", "ticket_id": entry.ticket_id},
            )
            return None
        except SQLAlchemyError as e:
            logger.error(f"Error creating survey request {entry.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create survey request: {e}") from e

    def claim(self, queue_id: str, now: datetime, lease_until: datetime) -> bool:
        """Atomically claim a PENDING row for one delivery attempt.

        Increments attempt_count and sets the processing lease in a single
        conditional UPDATE. Returns False when the row is terminal,
        exhausted or currently leased by another worker.

        Raises:
            PersistenceError: If database error occurs
        """
        now_str = to_db_timestamp(now)
        try:
            stmt = (
                update(NotificationQueueModel)
                .where(
                    NotificationQueueModel.id == queue_id,
                    NotificationQueueModel.status == _PENDING,
                    NotificationQueueModel.attempt_count < NotificationQueueModel.max_attempts,
                    _lease_is_free(now_str),
                )
                .values(
                    attempt_count=NotificationQueueModel.attempt_count + 1,
                    last_attempt_at=now_str,
                    claimed_until=to_db_timestamp(lease_until),
                )
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount == 1

        except SQLAlchemyError as e:
            logger.error(f"Error claiming notification {queue_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to claim notification: {e}") from e

    def mark_sent(
        self,
        queue_id: str,
        channel: NotificationChannel,
        recipient: Optional[str],
        sent_at: datetime,
        message_id: Optional[str] = None,
        response_data: Optional[Any] = None,
    ) -> bool:
        """Transition a PENDING row to SENT through the delivering channel."""
        return self._transition(
            queue_id,
            "mark sent",
            status=NotificationStatus.SENT.value,
            channel=channel.value,
            recipient=recipient,
            sent_at=to_db_timestamp(sent_at),
            message_id=message_id,
            response_data=response_data,
            claimed_until=None,
            last_error=None,
        )

    def mark_failed(self, queue_id: str, error: str, failed_at: datetime) -> bool:
        """Transition a PENDING row to FAILED after its last attempt."""
        return self._transition(
            queue_id,
            "mark failed",
            status=NotificationStatus.FAILED.value,
            error=error,
            last_error=error,
            failed_at=to_db_timestamp(failed_at),
            claimed_until=None,
        )

    def release(self, queue_id: str, last_error: Optional[str] = None) -> bool:
        """Clear the lease of a PENDING row so a later sweep can retry it."""
        return self._transition(
            queue_id, "release", claimed_until=None, last_error=last_error
        )

    def _transition(self, queue_id: str, action: str, **values: Any) -> bool:
        try:
            stmt = (
                update(NotificationQueueModel)
                .where(
                    NotificationQueueModel.id == queue_id,
                    NotificationQueueModel.status == _PENDING,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount == 1

        except SQLAlchemyError as e:
            logger.error(f"Error during {action} of notification {queue_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to {action} notification: {e}") from e

    def list_pending(self, now: datetime, limit: int) -> List[NotificationQueueEntry]:
        """Select rows eligible for a retry sweep.

        PENDING rows with attempts left, scheduled at or before ``now`` and
        not leased, oldest first: a row ranks by its last attempt, or by its
        creation time when it has never been attempted.
        """
        now_str = to_db_timestamp(now)
        try:
            stmt = (
                select(NotificationQueueModel)
                .where(
                    NotificationQueueModel.status == _PENDING,
                    NotificationQueueModel.attempt_count < NotificationQueueModel.max_attempts,
                    NotificationQueueModel.scheduled_at <= now_str,
                    _lease_is_free(now_str),
                )
                .order_by(
                    func.coalesce(
                        NotificationQueueModel.last_attempt_at, NotificationQueueModel.created_at
                    ).asc(),
                    NotificationQueueModel.created_at.asc(),
                )
                .limit(limit)
                .execution_options(populate_existing=True)
            )
            models = self.session.execute(stmt).scalars().all()
            return [model.to_domain() for model in models]

        except SQLAlchemyError as e:
            logger.error(f"Error listing pending notifications: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list pending notifications: {e}") from e

    def count_by_status(self) -> dict:
        """Return a {status: row count} mapping for health reporting."""
        try:
            stmt = select(NotificationQueueModel.status, func.count()).group_by(
                NotificationQueueModel.status
            )
            counts = {status.value: 0 for status in NotificationStatus}
            for status, count in self.session.execute(stmt):
                counts[status] = count
            return counts

        except SQLAlchemyError as e:
            logger.error(f"Error counting notifications: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count notifications: {e}") from e


class NotificationLogRepository:
    """Repository for the append-only delivery attempt log."""

    def __init__(self, session: Session):
        self.session = session

    def append(self, entry: NotificationLogEntry) -> NotificationLogEntry:
        """Insert one attempt record and return it with its assigned id.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            model = NotificationLogModel.from_domain(entry)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

        except SQLAlchemyError as e:
            logger.error(f"Error appending log for notification {entry.queue_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to append notification log: {e}") from e

    def list_for_queue(self, queue_id: str) -> List[NotificationLogEntry]:
        """Return all attempts for a queue row in insertion order."""
        try:
            stmt = (
                select(NotificationLogModel)
                .where(NotificationLogModel.queue_id == queue_id)
                .order_by(NotificationLogModel.id.asc())
            )
            models = self.session.execute(stmt).scalars().all()
            return [model.to_domain() for model in models]

        except SQLAlchemyError as e:
            logger.error(f"Error listing logs for notification {queue_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list notification logs: {e}") from e


class TicketRepository:
    """Read access to tickets plus the survey-sent marker."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, ticket_id: str) -> Optional[TicketSnapshot]:
        try:
            model = self.session.get(TicketModel, ticket_id)
            return model.to_domain() if model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving ticket {ticket_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve ticket: {e}") from e

    def find_survey_eligible(
        self, window_start: datetime, window_end: datetime, limit: int
    ) -> List[TicketSnapshot]:
        """Find replied or closed tickets due for a satisfaction survey.

        Args:
            window_start: Earliest replied_at to include (inclusive)
            window_end: Latest replied_at to include (inclusive)
            limit: Maximum number of tickets to return

        Returns:
            Tickets whose survey has not been marked as sent, oldest reply first

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                select(TicketModel)
                .outerjoin(
                    SatisfactionSurveyModel,
                    SatisfactionSurveyModel.ticket_id == TicketModel.id,
                )
                .where(
                    TicketModel.status.in_(
                        [TicketStatus.REPLIED.value, TicketStatus.CLOSED.value]
                    ),
                    TicketModel.replied_at >= to_db_timestamp(window_start),
                    TicketModel.replied_at <= to_db_timestamp(window_end),
                    SatisfactionSurveyModel.channel_sent_at.is_(None),
                )
                .order_by(TicketModel.replied_at.asc())
                .limit(limit)
            )
            models = self.session.execute(stmt).scalars().all()
            return [model.to_domain() for model in models]

        except SQLAlchemyError as e:
            logger.error(f"Error finding survey-eligible tickets: {e}", exc_info=True)
            raise PersistenceError(f"Failed to find survey-eligible tickets: {e}") from e

    def mark_survey_requested(self, ticket_id: str, sent_at: datetime) -> None:
        """Set channel_sent_at on the ticket's survey, creating the survey if needed.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = select(SatisfactionSurveyModel).where(
                SatisfactionSurveyModel.ticket_id == ticket_id
            )
            survey = self.session.execute(stmt).scalar_one_or_none()

            if survey is not None:
                survey.channel_sent_at = to_db_timestamp(sent_at)
            else:
                self.session.add(
                    SatisfactionSurveyModel(
                        id=f"svy_{uuid.uuid4().hex}",
                        ticket_id=ticket_id,
                        channel_sent_at=to_db_timestamp(sent_at),
                    )
                )
            self.session.flush()

        except SQLAlchemyError as e:
            logger.error(f"Error marking survey for ticket {ticket_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to mark survey requested: {e}") from e
