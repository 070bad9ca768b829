"""Periodic triggers: pending sweep and satisfaction survey discovery.

Both triggers are safe to invoke from cron, the HTTP surface and the
in-process scheduler at the same time. Overlapping runs in one process
are skipped; across processes the row claim and the survey unique index
keep the outcome correct.
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import uuid4

from civic_notify.config.environment import EnvironmentConfig
from civic_notify.config.models import DispatchConfig, SurveyConfig
from civic_notify.domain.models import NotificationType, TicketSnapshot
from civic_notify.logging import get_logger
from civic_notify.logging.context import log_context
from civic_notify.notifications.service import NotificationService, build_queue_entry
from civic_notify.persistence import (
    NotificationQueueRepository,
    PersistenceError,
    TicketRepository,
    get_session,
)
from civic_notify.utils.timestamps import utc_now

from .models import SurveyDiscoveryResult, SweepResult

logger = get_logger(__name__, component="scheduler")


class PendingSweepTrigger:
    """Retries due PENDING notifications in bounded batches."""

    name = "pending_sweep"

    def __init__(
        self,
        service: NotificationService,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.service = service
        self._clock = clock
        self._lock = threading.Lock()

    def run(self) -> SweepResult:
        """Dispatch one batch of due rows.

        Returns:
            SweepResult with per-row outcomes; ``skipped`` when a sweep is
            already running in this process

        Raises:
            PersistenceError: If the batch cannot be selected
        """
        started_at = self._clock()
        run_id = uuid4().hex

        if not self._lock.acquire(blocking=False):
            with log_context(run_id=run_id, trigger=self.name):
                logger.warning(
                    "Pending sweep skipped: previous sweep still in progress",
                    extra={"event": "sweep.skipped", "reason": "lock_held"},
                )
            return SweepResult(run_id, started_at, self._clock(), skipped=True)

        try:
            with log_context(run_id=run_id, trigger=self.name):
                logger.info("Pending sweep started", extra={"event": "sweep.started"})

                batch = self.service.process_pending()
                result = SweepResult(run_id, started_at, self._clock(), batch=batch)

                logger.info(
                    f"Pending sweep completed: {batch.processed} notifications processed",
                    extra={
                        "event": "sweep.completed",
                        "duration_ms": int(result.duration_seconds * 1000),
                        **batch.summary(),
                    },
                )
                return result
        finally:
            self._lock.release()


class SurveyDiscoveryTrigger:
    """Queues one satisfaction survey request per recently answered ticket.

    A ticket qualifies when it is REPLIED or CLOSED, its reply is between
    ``window_end`` and ``window_start`` old (23 to 24 hours by default)
    and its survey has not been marked as sent.
    """

    name = "survey_discovery"

    def __init__(
        self,
        survey_config: SurveyConfig,
        dispatch_config: DispatchConfig,
        env_config: EnvironmentConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.survey_config = survey_config
        self.dispatch_config = dispatch_config
        self.public_app_url = env_config.public_app_url.rstrip("/")
        self._clock = clock
        self._lock = threading.Lock()

    def run(self) -> SurveyDiscoveryResult:
        """Queue survey requests for eligible tickets.

        Each ticket is handled in its own transaction, so a database error
        on one ticket is counted and the rest of the run continues.

        Raises:
            PersistenceError: If the eligible tickets cannot be selected
        """
        started_at = self._clock()
        run_id = uuid4().hex
        result = SurveyDiscoveryResult(run_id, started_at, started_at)

        if not self._lock.acquire(blocking=False):
            with log_context(run_id=run_id, trigger=self.name):
                logger.warning(
                    "Survey discovery skipped: previous run still in progress",
                    extra={"event": "survey.skipped", "reason": "lock_held"},
                )
            result.skipped = True
            result.finished_at = self._clock()
            return result

        try:
            with log_context(run_id=run_id, trigger=self.name):
                self._discover(started_at, result)
                result.finished_at = self._clock()

                logger.info(
                    f"Survey discovery completed: {result.queued} survey requests queued",
                    extra={
                        "event": "survey.completed",
                        "examined": result.examined,
                        "queued": result.queued,
                        "already_queued": result.already_queued,
                        "skipped_no_contact": result.skipped_no_contact,
                        "errors": result.errors,
                    },
                )
                return result
        finally:
            self._lock.release()

    def _discover(self, now: datetime, result: SurveyDiscoveryResult) -> None:
        window_start = now - timedelta(seconds=self.survey_config.window_start_seconds)
        window_end = now - timedelta(seconds=self.survey_config.window_end_seconds)

        with get_session() as session:
            tickets = TicketRepository(session).find_survey_eligible(
                window_start, window_end, self.survey_config.max_tickets_per_run
            )

        result.examined = len(tickets)
        logger.info(
            f"Found {len(tickets)} tickets due for a satisfaction survey",
            extra={
                "event": "survey.candidates",
                "window_start": window_start.isoformat(),
                "window_end": window_end.isoformat(),
            },
        )

        for ticket in tickets:
            if not (ticket.citizen_phone or ticket.citizen_email):
                result.skipped_no_contact += 1
                logger.info(
                    f"Ticket {ticket.id} has no contact details, survey not queued",
                    extra={"event": "survey.no_contact", "ticket_id": ticket.id},
                )
                continue

            try:
                queue_id = self._queue_survey(ticket, now)
            except PersistenceError as e:
                result.errors += 1
                logger.error(
                    f"Could not queue survey for ticket {ticket.id}: {e}",
                    extra={"event": "survey.error", "ticket_id": ticket.id},
                )
                continue

            if queue_id is None:
                result.already_queued += 1
            else:
                result.queued += 1
                result.queue_ids.append(queue_id)

    def _queue_survey(self, ticket: TicketSnapshot, now: datetime) -> Optional[str]:
        """Insert the survey request and set the survey-sent marker in one transaction.

        Returns:
            The new queue id, or None when a request already existed
        """
        survey_url = f"{self.public_app_url}/timeline/{ticket.public_token}"
        entry = build_queue_entry(
            ticket.id,
            NotificationType.SATISFACTION_REQUEST,
            ticket.citizen_name,
            recipient_phone=ticket.citizen_phone,
            recipient_email=ticket.citizen_email,
            template_data={
                "ticket_id": ticket.id,
                "public_token": ticket.public_token,
                "survey_url": survey_url,
                "timeline_url": survey_url,
            },
            max_attempts=self.dispatch_config.max_attempts,
            now=now,
        )

        with log_context(ticket_id=ticket.id):
            with get_session() as session:
                created = NotificationQueueRepository(session).create_survey_request(entry)
                TicketRepository(session).mark_survey_requested(ticket.id, now)

            if created is None:
                logger.info(
                    f"Survey request for ticket {ticket.id} already queued",
                    extra={"event": "survey.already_queued"},
                )
                return None

            logger.info(
                f"Queued satisfaction survey for ticket {ticket.id}",
                extra={
                    "event": "survey.queued",
                    "queue_id": created.id,
                    "channel": created.channel.value,
                },
            )
            return created.id
