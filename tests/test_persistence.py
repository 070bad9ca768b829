"""Unit tests for the persistence layer.

Tests cover:
- Database initialization and session management
- Queue row creation, claim and guarded state transitions
- Pending selection order
- Append-only attempt log
- Survey request uniqueness and the survey-sent marker
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from civic_notify.domain.models import (
    NotificationChannel,
    NotificationLogEntry,
    NotificationStatus,
    TicketStatus,
)
from civic_notify.persistence import (
    DatabaseConnectionError,
    DataIntegrityError,
    NotificationLogRepository,
    NotificationQueueRepository,
    RecordNotFoundError,
    TicketRepository,
    close_database,
    get_session,
    init_database,
)
from civic_notify.persistence.schema import NotificationQueueModel, SatisfactionSurveyModel

from tests.helpers import insert_ticket, make_entry

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class TestDatabaseInitialization:
    """Tests for database initialization."""

    def test_init_database_creates_file_and_parents(self, tmp_path):
        db_file = tmp_path / "nested" / "dir" / "test.db"

        init_database(f"sqlite:///{db_file}")
        try:
            assert db_file.exists()
            with get_session() as session:
                assert session is not None
        finally:
            close_database()

    def test_invalid_url_raises(self):
        with pytest.raises(DatabaseConnectionError):
            init_database("")

        with pytest.raises(DatabaseConnectionError):
            init_database(None)

    def test_get_session_before_init_raises(self):
        close_database()

        with pytest.raises(DatabaseConnectionError):
            with get_session():
                pass

    def test_schema_creation_is_idempotent(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'test.db'}"
        init_database(url)
        close_database()

        init_database(url)
        close_database()

    def test_session_rolls_back_on_error(self, db):
        entry = make_entry()

        with pytest.raises(RuntimeError):
            with get_session() as session:
                NotificationQueueRepository(session).create(entry)
                raise RuntimeError("boom")

        with get_session() as session:
            assert NotificationQueueRepository(session).get(entry.id) is None


class TestNotificationQueueRepository:
    """Tests for queue rows and their transitions."""

    def _create(self, **kwargs):
        return self._create_at(NOW, **kwargs)

    def _create_at(self, created_at, **kwargs):
        entry = make_entry(now=created_at, **kwargs)
        with get_session() as session:
            NotificationQueueRepository(session).create(entry)
        return entry

    def test_create_and_get(self, db):
        entry = self._create(template_data={"timelineUrl": "http://x", "ticket_id": "T-100"})

        with get_session() as session:
            stored = NotificationQueueRepository(session).get(entry.id)

        assert stored.status is NotificationStatus.PENDING
        assert stored.channel is NotificationChannel.SMS
        assert stored.preferred_channel is NotificationChannel.SMS
        assert stored.recipient == "010-1234-5678"
        assert stored.attempt_count == 0
        assert stored.template_data == {"timelineUrl": "http://x", "ticket_id": "T-100"}
        assert stored.created_at == NOW

    def test_duplicate_id_raises_integrity_error(self, db):
        entry = self._create()

        with pytest.raises(DataIntegrityError):
            with get_session() as session:
                NotificationQueueRepository(session).create(entry)

    def test_require_missing_raises(self, db):
        with get_session() as session:
            with pytest.raises(RecordNotFoundError):
                NotificationQueueRepository(session).require("ntf_missing")

    def test_claim_increments_attempt_and_sets_lease(self, db):
        entry = self._create()
        lease = NOW + timedelta(minutes=2)

        with get_session() as session:
            assert NotificationQueueRepository(session).claim(entry.id, NOW, lease)

        with get_session() as session:
            stored = NotificationQueueRepository(session).get(entry.id)

        assert stored.attempt_count == 1
        assert stored.last_attempt_at == NOW
        assert stored.claimed_until == lease

    def test_claim_refused_while_leased(self, db):
        entry = self._create()

        with get_session() as session:
            repo = NotificationQueueRepository(session)
            assert repo.claim(entry.id, NOW, NOW + timedelta(minutes=2))
            assert not repo.claim(entry.id, NOW + timedelta(seconds=30), NOW + timedelta(minutes=3))

    def test_claim_allowed_after_lease_expires(self, db):
        entry = self._create()

        with get_session() as session:
            repo = NotificationQueueRepository(session)
            assert repo.claim(entry.id, NOW, NOW + timedelta(minutes=2))
            later = NOW + timedelta(minutes=5)
            assert repo.claim(entry.id, later, later + timedelta(minutes=2))
            assert repo.get(entry.id).attempt_count == 2

    def test_claim_refused_when_exhausted(self, db):
        entry = self._create(max_attempts=1)

        with get_session() as session:
            repo = NotificationQueueRepository(session)
            assert repo.claim(entry.id, NOW, NOW + timedelta(minutes=2))
            assert repo.release(entry.id, "SMS failed")
            assert not repo.claim(entry.id, NOW, NOW + timedelta(minutes=2))

    def test_mark_sent(self, db):
        entry = self._create()

        with get_session() as session:
            repo = NotificationQueueRepository(session)
            repo.claim(entry.id, NOW, NOW + timedelta(minutes=2))
            assert repo.mark_sent(
                entry.id,
                channel=NotificationChannel.EMAIL,
                recipient="minsu@example.com",
                sent_at=NOW,
                message_id="sg-1",
                response_data={"status_code": 202},
            )
            stored = repo.get(entry.id)

        assert stored.status is NotificationStatus.SENT
        assert stored.channel is NotificationChannel.EMAIL
        assert stored.preferred_channel is NotificationChannel.SMS
        assert stored.recipient == "minsu@example.com"
        assert stored.sent_at == NOW
        assert stored.claimed_until is None
        assert stored.message_id == "sg-1"

    def test_terminal_rows_cannot_transition(self, db):
        """SENT and FAILED are terminal: no transition or claim applies."""
        sent = self._create(ticket_id="T-1")
        failed = self._create(ticket_id="T-2")

        with get_session() as session:
            repo = NotificationQueueRepository(session)
            repo.mark_sent(sent.id, NotificationChannel.SMS, "010", NOW)
            repo.mark_failed(failed.id, "gave up", NOW)

            assert not repo.mark_failed(sent.id, "late failure", NOW)
            assert not repo.release(sent.id, "late failure")
            assert not repo.mark_sent(failed.id, NotificationChannel.SMS, "010", NOW)
            assert not repo.claim(failed.id, NOW, NOW + timedelta(minutes=2))

            assert repo.get(sent.id).status is NotificationStatus.SENT
            stored_failed = repo.get(failed.id)

        assert stored_failed.status is NotificationStatus.FAILED
        assert stored_failed.error == "gave up"
        assert stored_failed.failed_at == NOW

    def test_release_clears_lease(self, db):
        entry = self._create()

        with get_session() as session:
            repo = NotificationQueueRepository(session)
            repo.claim(entry.id, NOW, NOW + timedelta(minutes=2))
            assert repo.release(entry.id, last_error="HTTP 500: Server Error")
            stored = repo.get(entry.id)

        assert stored.status is NotificationStatus.PENDING
        assert stored.claimed_until is None
        assert stored.last_error == "HTTP 500: Server Error"
        assert stored.attempt_count == 1

    def test_list_pending_order_and_filters(self, db):
        """Rows rank by last attempt, or by creation when never attempted."""
        early_failure = self._create_at(NOW - timedelta(hours=2), ticket_id="T-1")
        recent_failure = self._create_at(NOW - timedelta(hours=3), ticket_id="T-2")
        waiting = self._create_at(NOW - timedelta(minutes=30), ticket_id="T-3")
        fresh = self._create(ticket_id="T-4")
        leased = self._create(ticket_id="T-5")
        future = make_entry(ticket_id="T-6", now=NOW, scheduled_at=NOW + timedelta(hours=1))
        done = self._create(ticket_id="T-7")

        with get_session() as session:
            repo = NotificationQueueRepository(session)
            repo.create(future)
            repo.claim(early_failure.id, NOW - timedelta(hours=1), NOW - timedelta(minutes=58))
            repo.release(early_failure.id, "HTTP 503")
            repo.claim(recent_failure.id, NOW - timedelta(minutes=10), NOW - timedelta(minutes=8))
            repo.release(recent_failure.id, "HTTP 503")
            repo.claim(leased.id, NOW, NOW + timedelta(minutes=2))
            repo.mark_sent(done.id, NotificationChannel.SMS, "010", NOW)

        with get_session() as session:
            pending = NotificationQueueRepository(session).list_pending(NOW, limit=10)

        assert [entry.id for entry in pending] == [
            early_failure.id,
            waiting.id,
            recent_failure.id,
            fresh.id,
        ]

    def test_list_pending_keeps_earlier_failure_ahead_of_new_rows(self, db):
        failed = self._create_at(NOW - timedelta(hours=2), ticket_id="T-old")
        with get_session() as session:
            repo = NotificationQueueRepository(session)
            repo.claim(failed.id, NOW - timedelta(hours=1), NOW - timedelta(minutes=58))
            repo.release(failed.id, "HTTP 500: Server Error")
        for i in range(3):
            self._create(ticket_id=f"T-new-{i}")

        with get_session() as session:
            batch = NotificationQueueRepository(session).list_pending(NOW, limit=1)

        assert [entry.ticket_id for entry in batch] == ["T-old"]

    def test_list_pending_respects_limit(self, db):
        for i in range(5):
            self._create(ticket_id=f"T-{i}")

        with get_session() as session:
            assert len(NotificationQueueRepository(session).list_pending(NOW, limit=3)) == 3

    def test_count_by_status(self, db):
        first = self._create(ticket_id="T-1")
        self._create(ticket_id="T-2")

        with get_session() as session:
            repo = NotificationQueueRepository(session)
            repo.mark_sent(first.id, NotificationChannel.SMS, "010", NOW)
            counts = repo.count_by_status()

        assert counts == {"PENDING": 1, "SENT": 1, "FAILED": 0}


class TestNotificationLogRepository:
    """Tests for the attempt log."""

    def test_append_and_list_in_order(self, db):
        entry = make_entry(now=NOW)
        with get_session() as session:
            NotificationQueueRepository(session).create(entry)
            log_repo = NotificationLogRepository(session)
            for channel, status in (
                (NotificationChannel.SMS, NotificationStatus.FAILED),
                (NotificationChannel.EMAIL, NotificationStatus.SENT),
            ):
                log_repo.append(
                    NotificationLogEntry(
                        queue_id=entry.id,
                        channel=channel,
                        status=status,
                        attempt_number=1,
                        request_data={"type": "TICKET_RECEIVED"},
                        created_at=NOW,
                    )
                )

        with get_session() as session:
            logs = NotificationLogRepository(session).list_for_queue(entry.id)

        assert [log.channel for log in logs] == [NotificationChannel.SMS, NotificationChannel.EMAIL]
        assert [log.status for log in logs] == [NotificationStatus.FAILED, NotificationStatus.SENT]
        assert all(log.id is not None for log in logs)
        assert logs[0].request_data == {"type": "TICKET_RECEIVED"}


class TestSurveyRequests:
    """Tests for survey request uniqueness and the survey marker."""

    def test_create_survey_request_once_per_ticket(self, db):
        first = make_entry(ticket_id="T-1", notification_type="SATISFACTION_REQUEST", now=NOW)
        second = make_entry(ticket_id="T-1", notification_type="SATISFACTION_REQUEST", now=NOW)

        with get_session() as session:
            repo = NotificationQueueRepository(session)
            assert repo.create_survey_request(first) is not None
            assert repo.create_survey_request(second) is None
            assert repo.find_survey_request("T-1").id == first.id

    def test_concurrent_survey_insert_is_discarded(self, db):
        """A run that misses the existing row loses on the unique index and still commits."""
        insert_ticket("T-1", NOW - timedelta(hours=23, minutes=30))
        first = make_entry(ticket_id="T-1", notification_type="SATISFACTION_REQUEST", now=NOW)
        second = make_entry(ticket_id="T-1", notification_type="SATISFACTION_REQUEST", now=NOW)

        with get_session() as session:
            NotificationQueueRepository(session).create_survey_request(first)

        with patch.object(NotificationQueueRepository, "find_survey_request", return_value=None):
            with get_session() as session:
                created = NotificationQueueRepository(session).create_survey_request(second)
                TicketRepository(session).mark_survey_requested("T-1", NOW)

        assert created is None

        with get_session() as session:
            rows = session.query(NotificationQueueModel).filter_by(ticket_id="T-1").all()
            survey = session.query(SatisfactionSurveyModel).filter_by(ticket_id="T-1").one()

            assert [row.id for row in rows] == [first.id]
            assert survey.channel_sent_at is not None

    def test_unique_index_rejects_second_survey_row(self, db):
        """The database itself refuses two survey rows for one ticket."""
        first = make_entry(ticket_id="T-1", notification_type="SATISFACTION_REQUEST", now=NOW)
        second = make_entry(ticket_id="T-1", notification_type="SATISFACTION_REQUEST", now=NOW)

        with get_session() as session:
            session.add(NotificationQueueModel.from_domain(first))

        with pytest.raises(IntegrityError):
            with get_session() as session:
                session.add(NotificationQueueModel.from_domain(second))

    def test_other_types_are_not_unique_per_ticket(self, db):
        with get_session() as session:
            repo = NotificationQueueRepository(session)
            repo.create(make_entry(ticket_id="T-1", now=NOW))
            repo.create(make_entry(ticket_id="T-1", now=NOW))

    def test_find_survey_eligible(self, db):
        insert_ticket("T-in", NOW - timedelta(hours=23, minutes=30))
        insert_ticket("T-closed", NOW - timedelta(hours=23, minutes=45), status=TicketStatus.CLOSED)
        insert_ticket("T-too-new", NOW - timedelta(hours=2))
        insert_ticket("T-too-old", NOW - timedelta(hours=30))
        insert_ticket(
            "T-open", NOW - timedelta(hours=23, minutes=30), status=TicketStatus.IN_PROGRESS
        )
        insert_ticket(
            "T-marked",
            NOW - timedelta(hours=23, minutes=30),
            survey_sent_at=NOW - timedelta(hours=1),
        )

        with get_session() as session:
            tickets = TicketRepository(session).find_survey_eligible(
                NOW - timedelta(hours=24), NOW - timedelta(hours=23), limit=10
            )

        assert [ticket.id for ticket in tickets] == ["T-closed", "T-in"]

    def test_mark_survey_requested_creates_and_updates(self, db):
        insert_ticket("T-1", NOW - timedelta(hours=23, minutes=30))

        with get_session() as session:
            TicketRepository(session).mark_survey_requested("T-1", NOW)

        with get_session() as session:
            TicketRepository(session).mark_survey_requested("T-1", NOW + timedelta(minutes=1))

        with get_session() as session:
            surveys = session.query(SatisfactionSurveyModel).filter_by(ticket_id="T-1").all()

        assert len(surveys) == 1
        assert surveys[0].id.startswith("svy_")
        assert surveys[0].channel_sent_at is not None
