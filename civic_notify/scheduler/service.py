"""Scheduler service for periodic trigger execution."""

import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from civic_notify.logging import get_logger

logger = get_logger(__name__, component="scheduler")

PENDING_SWEEP_JOB_ID = "pending-sweep"
SURVEY_DISCOVERY_JOB_ID = "survey-discovery"


class ScheduledJob:
    """A callable registered with the scheduler at a fixed interval."""

    def __init__(self, job_id: str, name: str, func: Callable[[], object], interval_seconds: int):
        self.job_id = job_id
        self.name = name
        self.func = func
        self.interval_seconds = interval_seconds


class SchedulerService:
    """
    Wraps APScheduler to run the triggers at their configured intervals.

    Uses BackgroundScheduler so jobs run in worker threads while the main
    thread handles signals (daemon mode) or serves HTTP (serve mode).
    """

    def __init__(
        self,
        jobs: List[ScheduledJob],
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            jobs: Jobs to register on start()
            shutdown_event: Optional event to set on shutdown for coordination
        """
        self.jobs: Dict[str, ScheduledJob] = {job.job_id: job for job in jobs}
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,  # Prevent overlapping runs of one job
                "coalesce": True,  # If runs were missed, only execute once
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """
        Register every job and start the scheduler.

        Each job runs immediately after startup, then on its interval.
        """
        next_run = datetime.now(timezone.utc)

        for job in self.jobs.values():
            self.scheduler.add_job(
                func=self._run_job,
                args=[job.job_id],
                trigger=IntervalTrigger(seconds=job.interval_seconds, timezone=timezone.utc),
                id=job.job_id,
                name=job.name,
                replace_existing=True,
                next_run_time=next_run,
                misfire_grace_time=job.interval_seconds,
            )

        self.scheduler.start()

        logger.info(
            f"Scheduler started with {len(self.jobs)} jobs",
            extra={
                "event": "scheduler.started",
                "jobs": {job_id: job.interval_seconds for job_id, job in self.jobs.items()},
                "next_run_time": next_run.isoformat(),
            },
        )

    def _run_job(self, job_id: str) -> None:
        """Run one job, logging instead of raising so the schedule keeps going."""
        job = self.jobs[job_id]
        try:
            job.func()
        except Exception as e:
            logger.error(
                f"Scheduled job {job.name} failed: {e}",
                exc_info=True,
                extra={"event": "scheduler.job_failed", "job_id": job_id},
            )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: If True, wait for running jobs to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self, job_id: str) -> None:
        """Run a job synchronously in the current thread."""
        logger.info(
            f"Triggering immediate run of {job_id}",
            extra={"event": "scheduler.trigger_now", "job_id": job_id},
        )
        self._run_job(job_id)

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self, job_id: str) -> Optional[datetime]:
        job = self.scheduler.get_job(job_id)
        return job.next_run_time if job else None
