"""Tests for notification intake and pending processing.

Tests cover:
- build_queue_entry() validation and channel selection
- queue_notification() with and without immediate dispatch
- process_pending() batches
- get_notification() lookups
"""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from civic_notify.channels import ChannelResult
from civic_notify.config.models import DispatchConfig
from civic_notify.domain.models import (
    NotificationChannel,
    NotificationStatus,
    NotificationType,
)
from civic_notify.notifications import (
    InMemoryCounterStore,
    NotificationDispatcher,
    NotificationService,
    RateLimiter,
    build_queue_entry,
)
from civic_notify.notifications import models as outcomes
from civic_notify.persistence import RecordNotFoundError
from tests.helpers import FakeChannelClient, make_clients

NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)
TEMPLATE_DATA = {"ticketId": "T-1", "timelineUrl": "http://localhost:3000/timeline/tok-1"}


def _service(clients, **config):
    dispatch_config = DispatchConfig(**config)
    dispatcher = NotificationDispatcher(
        clients, RateLimiter(InMemoryCounterStore()), dispatch_config
    )
    return NotificationService(dispatcher, dispatch_config)


class TestBuildQueueEntry:
    """Tests for build_queue_entry()."""

    def test_phone_selects_sms(self):
        entry = build_queue_entry(
            "T-1", "TICKET_RECEIVED", "Kim Minsu", recipient_phone="010-1234-5678", now=NOW
        )

        assert entry.id.startswith("ntf_")
        assert entry.status is NotificationStatus.PENDING
        assert entry.channel is NotificationChannel.SMS
        assert entry.preferred_channel is NotificationChannel.SMS
        assert entry.recipient == "010-1234-5678"
        assert entry.attempt_count == 0
        assert entry.created_at == NOW
        assert entry.scheduled_at == NOW

    def test_email_only_selects_email(self):
        entry = build_queue_entry(
            "T-1", NotificationType.TICKET_CLOSED, "Kim Minsu", recipient_email="a@example.com"
        )

        assert entry.channel is NotificationChannel.EMAIL
        assert entry.recipient == "a@example.com"

    def test_blank_contacts_are_absent(self):
        entry = build_queue_entry(
            "T-1", "TICKET_CLOSED", "Kim Minsu", recipient_phone="  ", recipient_email=""
        )

        assert entry.recipient_phone is None
        assert entry.recipient_email is None
        assert entry.channel is NotificationChannel.EMAIL

    def test_override_and_aliases(self):
        entry = build_queue_entry(
            "T-1",
            "RECEIPT_CONFIRMATION",
            "Kim Minsu",
            recipient_phone="010",
            preferred_channel="kakao",
        )

        assert entry.type is NotificationType.TICKET_RECEIVED
        assert entry.channel is NotificationChannel.CHAT

    def test_reply_sent_alias(self):
        entry = build_queue_entry("T-1", "reply_sent", "Kim Minsu", recipient_phone="010")

        assert entry.type is NotificationType.TICKET_REPLIED

    def test_unique_ids(self):
        ids = {build_queue_entry("T-1", "TICKET_CLOSED", "Kim").id for _ in range(20)}

        assert len(ids) == 20

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"ticket_id": "", "notification_type": "TICKET_CLOSED", "recipient_name": "Kim"},
            {"ticket_id": "T-1", "notification_type": "TICKET_CLOSED", "recipient_name": " "},
            {"ticket_id": "T-1", "notification_type": "NOT_A_TYPE", "recipient_name": "Kim"},
            {
                "ticket_id": "T-1",
                "notification_type": "TICKET_CLOSED",
                "recipient_name": "Kim",
                "preferred_channel": "FAX",
            },
        ],
    )
    def test_invalid_input_raises_value_error(self, kwargs):
        with pytest.raises(ValueError):
            build_queue_entry(**kwargs)


class TestQueueNotification:
    """Tests for NotificationService.queue_notification()."""

    def test_queue_and_dispatch_immediately(self, db):
        sms = FakeChannelClient(NotificationChannel.SMS)
        service = _service(make_clients(sms=sms))

        queue_id = service.queue_notification(
            "T-1",
            "TICKET_RECEIVED",
            "Kim Minsu",
            recipient_phone="010-1234-5678",
            template_data=TEMPLATE_DATA,
        )

        entry, logs = service.get_notification(queue_id)
        assert entry.status is NotificationStatus.SENT
        assert entry.attempt_count == 1
        assert len(logs) == 1
        assert len(sms.sent) == 1
        assert sms.sent[0].payload.template_data == TEMPLATE_DATA

    def test_queue_without_immediate_dispatch(self, db):
        sms = FakeChannelClient(NotificationChannel.SMS)
        service = _service(make_clients(sms=sms), dispatch_on_enqueue=False)

        queue_id = service.queue_notification(
            "T-1", "TICKET_RECEIVED", "Kim Minsu", recipient_phone="010-1234-5678"
        )

        entry, logs = service.get_notification(queue_id)
        assert entry.status is NotificationStatus.PENDING
        assert entry.attempt_count == 0
        assert entry.max_attempts == 3
        assert logs == []
        assert sms.sent == []

    def test_dispatch_errors_are_not_raised(self, db):
        """A template error on the immediate attempt stays on the row."""
        sms = FakeChannelClient(NotificationChannel.SMS, render=True)
        service = _service(make_clients(sms=sms))

        queue_id = service.queue_notification(
            "T-1", "TICKET_RECEIVED", "Kim Minsu", recipient_phone="010-1234-5678"
        )

        entry, logs = service.get_notification(queue_id)
        assert entry.status is NotificationStatus.PENDING
        assert entry.attempt_count == 1
        assert entry.last_error
        assert len(logs) == 1

    def test_invalid_request_is_not_stored(self, db):
        dispatcher = Mock()
        service = NotificationService(dispatcher, DispatchConfig())

        with pytest.raises(ValueError):
            service.queue_notification("T-1", "UNKNOWN", "Kim Minsu", recipient_phone="010")

        dispatcher.dispatch.assert_not_called()
        assert service.process_pending().processed == 0

    def test_max_attempts_from_config(self, db):
        service = _service(make_clients(), dispatch_on_enqueue=False, max_attempts=5)

        queue_id = service.queue_notification("T-1", "TICKET_CLOSED", "Kim", recipient_phone="010")

        assert service.get_notification(queue_id)[0].max_attempts == 5


class TestProcessPending:
    """Tests for NotificationService.process_pending()."""

    def test_retries_until_exhausted(self, db):
        sms = FakeChannelClient(
            NotificationChannel.SMS,
            results=[ChannelResult.failure(NotificationChannel.SMS, "Gateway down")] * 3,
        )
        service = _service(make_clients(sms=sms), dispatch_on_enqueue=False)
        queue_id = service.queue_notification(
            "T-1", "TICKET_RECEIVED", "Kim Minsu", recipient_phone="010-1234-5678"
        )

        runs = [service.process_pending() for _ in range(3)]

        assert [run.results[0].outcome for run in runs] == [
            outcomes.RETRY,
            outcomes.RETRY,
            outcomes.FAILED,
        ]
        entry, logs = service.get_notification(queue_id)
        assert entry.status is NotificationStatus.FAILED
        assert entry.attempt_count == 3
        assert len(logs) == 3

        assert service.process_pending().processed == 0

    def test_batch_size_limits_rows(self, db):
        sms = FakeChannelClient(NotificationChannel.SMS)
        service = _service(make_clients(sms=sms), dispatch_on_enqueue=False, batch_size=2)
        for i in range(3):
            service.queue_notification(
                f"T-{i}",
                "TICKET_CLOSED",
                "Kim",
                recipient_phone=f"010-0000-000{i}",
                template_data={"timeline_url": "http://x"},
            )

        first = service.process_pending()
        second = service.process_pending()

        assert first.processed == 2
        assert first.summary()["sent"] == 2
        assert second.processed == 1
        assert service.process_pending(limit=10).processed == 0


class TestGetNotification:
    """Tests for NotificationService.get_notification()."""

    def test_missing_raises(self, db):
        service = _service(make_clients())

        with pytest.raises(RecordNotFoundError):
            service.get_notification("ntf_missing")
