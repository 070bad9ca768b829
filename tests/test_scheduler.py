"""Unit tests for the scheduler service.

Tests the SchedulerService including:
- Job registration with correct configuration
- Immediate first run (next_run_time set to now)
- Start/shutdown lifecycle
- Failing jobs not stopping the schedule
- Trigger now functionality
"""

import threading
import time
from datetime import datetime
from unittest.mock import Mock

from civic_notify.scheduler import ScheduledJob, SchedulerService


def _job(func, job_id="pending-sweep", interval=60):
    return ScheduledJob(job_id, "Test job", func, interval)


class TestSchedulerService:
    """Test suite for SchedulerService."""

    def test_scheduler_initialization(self):
        """Test that scheduler initializes with correct parameters."""
        shutdown_event = threading.Event()

        scheduler = SchedulerService([_job(Mock())], shutdown_event=shutdown_event)

        assert list(scheduler.jobs) == ["pending-sweep"]
        assert scheduler.shutdown_event == shutdown_event
        assert not scheduler.is_running()

    def test_job_defaults_prevent_overlap(self):
        """Test that jobs are registered with max_instances=1 and coalesce=True."""
        scheduler = SchedulerService([_job(Mock())])

        assert scheduler.scheduler._job_defaults["max_instances"] == 1
        assert scheduler.scheduler._job_defaults["coalesce"] is True

    def test_scheduler_start_and_shutdown(self):
        """Test scheduler start and shutdown lifecycle."""
        shutdown_event = threading.Event()
        scheduler = SchedulerService(
            [_job(Mock(), interval=300)], shutdown_event=shutdown_event
        )

        scheduler.start()
        assert scheduler.is_running()

        time.sleep(0.1)

        scheduler.shutdown(wait=False)
        assert not scheduler.is_running()
        assert shutdown_event.is_set()

    def test_every_job_runs_immediately(self):
        """Test that each job's first run is scheduled right after start."""
        sweep_calls = []
        survey_calls = []

        scheduler = SchedulerService(
            [
                _job(lambda: sweep_calls.append(1), "pending-sweep", 60),
                _job(lambda: survey_calls.append(1), "survey-discovery", 300),
            ]
        )

        scheduler.start()
        time.sleep(1.5)
        scheduler.shutdown(wait=True)

        assert len(sweep_calls) >= 1
        assert len(survey_calls) >= 1

    def test_failing_job_is_logged_not_raised(self):
        """Test that an exception in a job does not escape the scheduler."""
        failing = Mock(side_effect=RuntimeError("boom"))
        scheduler = SchedulerService([_job(failing)])

        scheduler.trigger_now("pending-sweep")
        scheduler.trigger_now("pending-sweep")

        assert failing.call_count == 2

    def test_trigger_now_executes_immediately(self):
        """Test that trigger_now executes the job synchronously."""
        func = Mock()
        scheduler = SchedulerService([_job(func, interval=3600)])

        scheduler.trigger_now("pending-sweep")

        func.assert_called_once_with()

    def test_get_next_run_time(self):
        """Test getting the next scheduled run time."""
        scheduler = SchedulerService([_job(Mock())])

        assert scheduler.get_next_run_time("pending-sweep") is None

        scheduler.start()
        time.sleep(0.1)

        next_run = scheduler.get_next_run_time("pending-sweep")
        assert isinstance(next_run, datetime)
        assert scheduler.get_next_run_time("unknown") is None

        scheduler.shutdown(wait=False)

    def test_shutdown_without_start(self):
        """Test that shutdown is safe when the scheduler never started."""
        scheduler = SchedulerService([_job(Mock())], shutdown_event=None)

        scheduler.shutdown(wait=False)

        assert not scheduler.is_running()
