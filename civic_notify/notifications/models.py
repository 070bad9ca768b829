"""Result types returned by the dispatcher."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from civic_notify.domain.models import NotificationChannel

# DispatchResult.outcome values
SENT = "sent"
RETRY = "retry"  # attempt failed, row stays PENDING
FAILED = "failed"  # attempt failed and the row reached max_attempts
SKIPPED = "skipped"  # row not claimable (terminal, exhausted or leased)
RATE_LIMITED = "rate_limited"
ERROR = "error"  # programmer error while processing the row

OUTCOMES = (SENT, RETRY, FAILED, SKIPPED, RATE_LIMITED, ERROR)


@dataclass
class DispatchResult:
    """Outcome of one dispatch call for one queue row.

    Attributes:
        queue_id: Queue row that was processed
        outcome: One of SENT, RETRY, FAILED, SKIPPED, RATE_LIMITED, ERROR
        channel: Channel that delivered, or the last channel attempted
        attempt_count: Row attempt_count after this call
        channels_tried: Channels a send was made through, in order
        error: Last failure reason, if any
    """

    queue_id: str
    outcome: str
    channel: Optional[NotificationChannel] = None
    attempt_count: int = 0
    channels_tried: List[NotificationChannel] = field(default_factory=list)
    error: Optional[str] = None

    def is_success(self) -> bool:
        return self.outcome == SENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "queue_id": self.queue_id,
            "outcome": self.outcome,
            "channel": self.channel.value if self.channel else None,
            "attempt_count": self.attempt_count,
            "channels_tried": [channel.value for channel in self.channels_tried],
            "error": self.error,
        }


@dataclass
class BatchResult:
    """Outcomes of dispatching several rows."""

    results: List[DispatchResult] = field(default_factory=list)

    def count(self, outcome: str) -> int:
        return sum(1 for result in self.results if result.outcome == outcome)

    @property
    def processed(self) -> int:
        return len(self.results)

    def summary(self) -> Dict[str, int]:
        counts = {outcome: self.count(outcome) for outcome in OUTCOMES}
        counts["processed"] = self.processed
        return counts
