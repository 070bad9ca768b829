"""Tests for the pending sweep and satisfaction survey discovery triggers.

Tests cover:
- Sweep delegating to the service and skipping overlapping runs
- Survey discovery window, marker and idempotence
- Tickets without contact details
- Requests that already exist in the queue
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest

from civic_notify.config.environment import EnvironmentConfig
from civic_notify.config.models import DispatchConfig, SurveyConfig
from civic_notify.domain.models import (
    NotificationChannel,
    NotificationStatus,
    NotificationType,
    TicketStatus,
)
from civic_notify.notifications.models import BatchResult, DispatchResult
from civic_notify.persistence import NotificationQueueRepository, PersistenceError, get_session
from civic_notify.persistence.schema import SatisfactionSurveyModel
from civic_notify.scheduler import PendingSweepTrigger, SurveyDiscoveryTrigger
from tests.helpers import insert_ticket, make_entry

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
IN_WINDOW = NOW - timedelta(hours=23, minutes=30)


def _survey_trigger(**survey):
    return SurveyDiscoveryTrigger(
        SurveyConfig(**survey),
        DispatchConfig(),
        EnvironmentConfig(public_app_url="https://civicaid.example.com/"),
        clock=lambda: NOW,
    )


class TestPendingSweepTrigger:
    """Test suite for PendingSweepTrigger."""

    def test_run_returns_batch(self):
        service = Mock()
        service.process_pending.return_value = BatchResult(
            [DispatchResult("ntf_1", "sent"), DispatchResult("ntf_2", "retry")]
        )
        trigger = PendingSweepTrigger(service, clock=lambda: NOW)

        result = trigger.run()

        assert result.skipped is False
        assert result.batch.processed == 2
        service.process_pending.assert_called_once_with()

        data = result.to_dict()
        assert data["sent"] == 1
        assert data["retry"] == 1
        assert data["processed"] == 2
        assert [item["queue_id"] for item in data["results"]] == ["ntf_1", "ntf_2"]

    def test_overlapping_run_is_skipped(self):
        service = Mock()
        trigger = PendingSweepTrigger(service)

        trigger._lock.acquire()
        try:
            result = trigger.run()
        finally:
            trigger._lock.release()

        assert result.skipped is True
        service.process_pending.assert_not_called()

    def test_lock_released_after_error(self):
        service = Mock()
        service.process_pending.side_effect = [PersistenceError("db down"), BatchResult()]
        trigger = PendingSweepTrigger(service)

        with pytest.raises(PersistenceError):
            trigger.run()

        assert trigger.run().skipped is False


class TestSurveyDiscoveryTrigger:
    """Test suite for SurveyDiscoveryTrigger."""

    def test_queues_one_request_per_eligible_ticket(self, db):
        insert_ticket("T-1", IN_WINDOW, public_token="tok-abc")

        result = _survey_trigger().run()

        assert result.examined == 1
        assert result.queued == 1
        assert len(result.queue_ids) == 1

        with get_session() as session:
            entry = NotificationQueueRepository(session).get(result.queue_ids[0])
            survey = session.query(SatisfactionSurveyModel).filter_by(ticket_id="T-1").one()

        assert entry.type is NotificationType.SATISFACTION_REQUEST
        assert entry.status is NotificationStatus.PENDING
        assert entry.channel is NotificationChannel.SMS
        assert entry.recipient_name == "Kim Minsu"
        assert entry.template_data["survey_url"] == "https://civicaid.example.com/timeline/tok-abc"
        assert entry.template_data["timeline_url"] == entry.template_data["survey_url"]
        assert survey.channel_sent_at is not None

    def test_second_run_queues_nothing(self, db):
        insert_ticket("T-1", IN_WINDOW)
        trigger = _survey_trigger()

        first = trigger.run()
        second = trigger.run()

        assert first.queued == 1
        assert second.examined == 0
        assert second.queued == 0

        with get_session() as session:
            assert NotificationQueueRepository(session).count_by_status()["PENDING"] == 1

    def test_existing_request_counts_as_already_queued(self, db):
        """A request queued before the marker was set is not duplicated."""
        insert_ticket("T-1", IN_WINDOW)
        existing = make_entry(ticket_id="T-1", notification_type="SATISFACTION_REQUEST", now=NOW)
        with get_session() as session:
            NotificationQueueRepository(session).create(existing)

        trigger = _survey_trigger()
        result = trigger.run()

        assert result.queued == 0
        assert result.already_queued == 1
        # The marker is now set, so the ticket is no longer eligible
        assert trigger.run().examined == 0

    def test_tickets_outside_window_or_open_are_ignored(self, db):
        insert_ticket("T-new", NOW - timedelta(hours=1))
        insert_ticket("T-old", NOW - timedelta(days=3))
        insert_ticket("T-open", IN_WINDOW, status=TicketStatus.IN_PROGRESS)
        insert_ticket("T-closed", IN_WINDOW, status=TicketStatus.CLOSED)

        result = _survey_trigger().run()

        assert result.examined == 1
        assert result.queued == 1

    def test_ticket_without_contact_is_skipped(self, db):
        insert_ticket("T-1", IN_WINDOW, citizen_phone=None, citizen_email=None)

        result = _survey_trigger().run()

        assert result.skipped_no_contact == 1
        assert result.queued == 0

    def test_email_only_ticket_uses_email(self, db):
        insert_ticket("T-1", IN_WINDOW, citizen_phone=None)

        result = _survey_trigger().run()

        with get_session() as session:
            entry = NotificationQueueRepository(session).get(result.queue_ids[0])
        assert entry.channel is NotificationChannel.EMAIL

    def test_database_error_on_one_ticket_is_counted(self, db):
        insert_ticket("T-1", IN_WINDOW)
        insert_ticket("T-2", IN_WINDOW + timedelta(minutes=1))
        trigger = _survey_trigger()

        original = trigger._queue_survey

        def flaky(ticket, now):
            if ticket.id == "T-1":
                raise PersistenceError("locked")
            return original(ticket, now)

        with patch.object(trigger, "_queue_survey", side_effect=flaky):
            result = trigger.run()

        assert result.errors == 1
        assert result.queued == 1

    def test_max_tickets_per_run(self, db):
        for i in range(3):
            insert_ticket(f"T-{i}", IN_WINDOW + timedelta(minutes=i))

        result = _survey_trigger(max_tickets_per_run=2).run()

        assert result.examined == 2
        assert result.queued == 2
