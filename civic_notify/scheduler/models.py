"""Result types for trigger runs."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from civic_notify.notifications.models import BatchResult


@dataclass
class SweepResult:
    """
    Outcome of one pending sweep.

    Attributes:
        run_id: Identifier shared by every log line of the run
        started_at: UTC timestamp when the sweep began
        finished_at: UTC timestamp when the sweep completed
        batch: Per-row dispatch outcomes
        skipped: Whether the run was skipped because another sweep was active
    """

    run_id: str
    started_at: datetime
    finished_at: datetime
    batch: BatchResult = field(default_factory=BatchResult)
    skipped: bool = False

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "skipped": self.skipped,
            "duration_ms": int(self.duration_seconds * 1000),
            **self.batch.summary(),
            "results": [result.to_dict() for result in self.batch.results],
        }


@dataclass
class SurveyDiscoveryResult:
    """
    Outcome of one satisfaction survey discovery run.

    Attributes:
        run_id: Identifier shared by every log line of the run
        started_at: UTC timestamp when the run began
        finished_at: UTC timestamp when the run completed
        examined: Eligible tickets returned by the query
        queued: Survey requests inserted by this run
        already_queued: Tickets whose request existed (or was inserted concurrently)
        skipped_no_contact: Tickets without phone or email
        queue_ids: Ids of the rows inserted by this run
        skipped: Whether the run was skipped because another run was active
        errors: Tickets that could not be processed because of a database error
    """

    run_id: str
    started_at: datetime
    finished_at: datetime
    examined: int = 0
    queued: int = 0
    already_queued: int = 0
    skipped_no_contact: int = 0
    queue_ids: List[str] = field(default_factory=list)
    skipped: bool = False
    errors: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "skipped": self.skipped,
            "examined": self.examined,
            "queued": self.queued,
            "already_queued": self.already_queued,
            "skipped_no_contact": self.skipped_no_contact,
            "queue_ids": list(self.queue_ids),
            "errors": self.errors,
        }
