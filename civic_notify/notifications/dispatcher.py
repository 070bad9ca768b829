"""Notification dispatcher.

Takes one PENDING queue row through a delivery attempt:

1. Rate limiter check (a denied recipient keeps its attempt)
2. Atomic claim: attempt_count + 1 and a processing lease in one UPDATE
3. Send through the row's channel, then at most one fallback channel
4. One notification_log row per send, then the status transition

No database transaction is held while a channel client is on the
network; the lease keeps other workers off the row instead.
"""

import contextvars
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from civic_notify.channels import (
    ChannelClient,
    ChannelResult,
    NotificationTemplateError,
    OutboundMessage,
)
from civic_notify.config.models import DispatchConfig
from civic_notify.domain.models import (
    NotificationChannel,
    NotificationLogEntry,
    NotificationQueueEntry,
    NotificationStatus,
)
from civic_notify.logging import get_logger
from civic_notify.logging.context import log_context
from civic_notify.persistence import (
    NotificationLogRepository,
    NotificationQueueRepository,
    get_session,
)
from civic_notify.utils.timestamps import utc_now

from . import models
from .models import BatchResult, DispatchResult
from .rate_limit import RateLimiter, recipient_key
from .selector import fallback_chain, recipient_for

logger = get_logger(__name__, component="dispatcher")

# (channel, result) for every send made during one dispatch call
Attempts = List[Tuple[NotificationChannel, ChannelResult]]


def _describe(error: Exception) -> str:
    if isinstance(error, NotificationTemplateError):
        return str(error)
    return f"{type(error).__name__}: {error}"


class NotificationDispatcher:
    """Delivers queued notifications through the channel clients.

    Args:
        clients: One client per channel (see build_channel_clients)
        rate_limiter: Per-recipient flood guard
        config: Attempt cap, claim lease and worker settings
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        clients: Dict[NotificationChannel, ChannelClient],
        rate_limiter: RateLimiter,
        config: Optional[DispatchConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.clients = clients
        self.rate_limiter = rate_limiter
        self.config = config or DispatchConfig()
        self._clock = clock

    def dispatch(self, queue_id: str) -> DispatchResult:
        """Make one delivery attempt for a queue row.

        Returns:
            DispatchResult; SKIPPED when the row cannot be claimed

        Raises:
            NotificationTemplateError: If a message cannot be rendered. This
                and any other unexpected error raised by a client is logged
                as a failed attempt and the row released (or FAILED at the
                cap) before the error propagates.
            PersistenceError: If a database operation fails
        """
        with log_context(queue_id=queue_id):
            with get_session() as session:
                entry = NotificationQueueRepository(session).get(queue_id)

            if entry is None:
                logger.warning(
                    f"Notification {queue_id} not found",
                    extra={"event": "dispatch.not_found"},
                )
                return DispatchResult(queue_id, models.SKIPPED, error="Notification not found")

            with log_context(ticket_id=entry.ticket_id):
                return self._dispatch_entry(entry)

    def _dispatch_entry(self, entry: NotificationQueueEntry) -> DispatchResult:
        if entry.status.is_terminal:
            logger.debug(
                f"Notification {entry.id} already {entry.status.value}",
                extra={"event": "dispatch.skip", "reason": "terminal"},
            )
            return DispatchResult(
                entry.id, models.SKIPPED, channel=entry.channel, attempt_count=entry.attempt_count
            )

        limiter_key = recipient_key(entry.recipient_phone, entry.recipient_email, entry.ticket_id)
        if not self.rate_limiter.can_send(limiter_key):
            return DispatchResult(
                entry.id,
                models.RATE_LIMITED,
                channel=entry.channel,
                attempt_count=entry.attempt_count,
                error="Recipient rate limit reached",
            )

        claimed = self._claim(entry.id)
        if claimed is None:
            logger.debug(
                f"Notification {entry.id} not claimable",
                extra={"event": "dispatch.skip", "reason": "not_claimable"},
            )
            return DispatchResult(
                entry.id, models.SKIPPED, channel=entry.channel, attempt_count=entry.attempt_count
            )

        logger.info(
            f"Dispatching {claimed.type.value} notification {claimed.id} "
            f"(attempt {claimed.attempt_count}/{claimed.max_attempts})",
            extra={
                "event": "dispatch.started",
                "channel": claimed.channel.value,
                "attempt": claimed.attempt_count,
            },
        )

        attempts: Attempts = []
        try:
            self._send_with_fallback(claimed, attempts)
        except Exception as e:
            self._finish_failure(claimed, attempts, _describe(e))
            if isinstance(e, NotificationTemplateError):
                logger.error(
                    f"Notification {claimed.id} could not be rendered: {e}",
                    extra={"event": "dispatch.template_error"},
                )
            else:
                logger.error(
                    f"Unexpected error sending notification {claimed.id}: {e}",
                    exc_info=True,
                    extra={"event": "dispatch.client_error", "error_type": type(e).__name__},
                )
            raise

        if attempts and attempts[-1][1].success:
            return self._finish_success(claimed, attempts, limiter_key)

        if not attempts:
            error = self._unavailable_error(claimed.channel)
        else:
            error = attempts[-1][1].error or "Send failed"
        return self._finish_failure(claimed, attempts, error)

    def _claim(self, queue_id: str) -> Optional[NotificationQueueEntry]:
        now = self._clock()
        lease_until = now + timedelta(seconds=self.config.claim_ttl_seconds)
        with get_session() as session:
            repo = NotificationQueueRepository(session)
            if not repo.claim(queue_id, now, lease_until):
                return None
            return repo.get(queue_id)

    def _send_with_fallback(self, entry: NotificationQueueEntry, attempts: Attempts) -> None:
        """Send through the row's channel, then through one fallback channel.

        Unavailable channels are passed over without a send. Each send is
        appended to ``attempts`` as it completes, so the caller sees
        partial progress if a later send raises.
        """
        message = OutboundMessage(
            queue_id=entry.id,
            ticket_id=entry.ticket_id,
            type=entry.type,
            payload=entry.payload,
        )

        if self._available(entry.channel):
            if self._send(entry.channel, message, attempts).success:
                return

        for channel in fallback_chain(entry.channel):
            if not self._available(channel):
                continue
            logger.info(
                f"Falling back to {channel.value} for notification {entry.id}",
                extra={"event": "dispatch.fallback", "channel": channel.value},
            )
            self._send(channel, message, attempts)
            return

    def _available(self, channel: NotificationChannel) -> bool:
        client = self.clients.get(channel)
        if client is not None and client.is_available():
            return True
        logger.debug(
            f"{channel.value} channel not available",
            extra={"event": "dispatch.channel_unavailable", "channel": channel.value},
        )
        return False

    def _send(
        self, channel: NotificationChannel, message: OutboundMessage, attempts: Attempts
    ) -> ChannelResult:
        try:
            result = self.clients[channel].send(message)
        except Exception as e:
            attempts.append((channel, ChannelResult.failure(channel, _describe(e))))
            raise

        attempts.append((channel, result))
        if result.success:
            logger.info(
                f"Sent notification {message.queue_id} via {channel.value}",
                extra={
                    "event": "dispatch.channel.sent",
                    "channel": channel.value,
                    "message_id": result.message_id,
                },
            )
        else:
            logger.warning(
                f"{channel.value} send failed for notification {message.queue_id}: {result.error}",
                extra={"event": "dispatch.channel.failed", "channel": channel.value},
            )
        return result

    def _unavailable_error(self, channel: NotificationChannel) -> str:
        names = ", ".join(c.value for c in [channel] + fallback_chain(channel))
        return f"No channel available ({names} not configured)"

    def _finish_success(
        self, entry: NotificationQueueEntry, attempts: Attempts, limiter_key: str
    ) -> DispatchResult:
        channel, result = attempts[-1]
        now = self._clock()
        recipient = recipient_for(channel, entry.recipient_phone, entry.recipient_email)

        with get_session() as session:
            self._append_logs(session, entry, attempts, now)
            NotificationQueueRepository(session).mark_sent(
                entry.id,
                channel=channel,
                recipient=recipient,
                sent_at=now,
                message_id=result.message_id,
                response_data=result.response_data,
            )

        self.rate_limiter.record(limiter_key)

        logger.info(
            f"Notification {entry.id} delivered via {channel.value}",
            extra={
                "event": "dispatch.sent",
                "channel": channel.value,
                "attempt": entry.attempt_count,
                "fallback_used": channel is not entry.channel,
            },
        )
        return DispatchResult(
            entry.id,
            models.SENT,
            channel=channel,
            attempt_count=entry.attempt_count,
            channels_tried=[c for c, _ in attempts],
        )

    def _finish_failure(
        self, entry: NotificationQueueEntry, attempts: Attempts, error: str
    ) -> DispatchResult:
        """Log the failed attempt and either release the row or mark it FAILED.

        When no channel was available a single FAILED log row is written
        against the row's channel so the attempt is still on record.
        """
        now = self._clock()
        logged = list(attempts)
        if not logged:
            logged.append((entry.channel, ChannelResult.failure(entry.channel, error)))

        exhausted = entry.attempt_count >= entry.max_attempts

        with get_session() as session:
            self._append_logs(session, entry, logged, now)
            repo = NotificationQueueRepository(session)
            if exhausted:
                repo.mark_failed(entry.id, error=error, failed_at=now)
            else:
                repo.release(entry.id, last_error=error)

        outcome = models.FAILED if exhausted else models.RETRY
        if exhausted:
            logger.warning(
                f"Notification {entry.id} FAILED after {entry.attempt_count} attempts: {error}",
                extra={"event": "dispatch.failed", "attempt": entry.attempt_count},
            )
        else:
            logger.info(
                f"Notification {entry.id} attempt {entry.attempt_count} failed, will retry",
                extra={
                    "event": "dispatch.retry_scheduled",
                    "attempt": entry.attempt_count,
                    "attempts_remaining": entry.max_attempts - entry.attempt_count,
                },
            )

        return DispatchResult(
            entry.id,
            outcome,
            channel=logged[-1][0],
            attempt_count=entry.attempt_count,
            channels_tried=[c for c, _ in attempts],
            error=error,
        )

    def _append_logs(
        self, session, entry: NotificationQueueEntry, attempts: Attempts, now: datetime
    ) -> None:
        log_repo = NotificationLogRepository(session)
        for channel, result in attempts:
            log_repo.append(
                NotificationLogEntry(
                    queue_id=entry.id,
                    channel=channel,
                    status=NotificationStatus.SENT if result.success else NotificationStatus.FAILED,
                    attempt_number=entry.attempt_count,
                    request_data={
                        "type": entry.type.value,
                        "template_data": entry.template_data,
                        **result.request_data,
                    },
                    response_data=result.response_data,
                    error_message=result.error,
                    created_at=now,
                )
            )

    def dispatch_many(self, queue_ids: Sequence[str]) -> BatchResult:
        """Dispatch independent rows concurrently.

        Exceptions raised for one row are logged and recorded as an ERROR
        outcome; the other rows are unaffected. Results keep the order of
        ``queue_ids``.
        """
        batch = BatchResult()
        if not queue_ids:
            return batch

        workers = min(self.config.concurrency, len(queue_ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dispatch") as executor:
            # Each task runs in a copy of the caller's context so run_id/trigger propagate
            futures = [
                executor.submit(contextvars.copy_context().run, self._dispatch_guarded, queue_id)
                for queue_id in queue_ids
            ]
            batch.results = [future.result() for future in futures]

        return batch

    def _dispatch_guarded(self, queue_id: str) -> DispatchResult:
        try:
            return self.dispatch(queue_id)
        except Exception as e:
            logger.error(
                f"Dispatch of notification {queue_id} aborted: {e}",
                exc_info=True,
                extra={"event": "dispatch.error", "queue_id": queue_id, "error_type": type(e).__name__},
            )
            return DispatchResult(queue_id, models.ERROR, error=str(e))
