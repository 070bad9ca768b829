"""Per-recipient rate limiting.

The limiter is a flood guard, not a correctness mechanism: counters are
best-effort, races may let a send through or hold one back, and the
default store is in-process only. Running more than one instance needs
a shared CounterStore implementation.
"""

import re
import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Optional

from civic_notify.logging import get_logger

logger = get_logger(__name__, component="rate_limit")

_PHONE_NOISE = re.compile(r"[\s\-().]")


class CounterStore(ABC):
    """Storage for timestamps of recent sends, keyed by recipient."""

    @abstractmethod
    def count_since(self, key: str, since: float) -> int:
        """Count sends for ``key`` at or after ``since`` (epoch seconds)."""

    @abstractmethod
    def add(self, key: str, at: float) -> None:
        """Record a send for ``key`` at ``at`` (epoch seconds)."""


class InMemoryCounterStore(CounterStore):
    """Thread-safe in-process store that prunes expired timestamps on read."""

    def __init__(self):
        self._events: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def count_since(self, key: str, since: float) -> int:
        with self._lock:
            events = self._events.get(key)
            if not events:
                return 0
            while events and events[0] < since:
                events.popleft()
            if not events:
                del self._events[key]
                return 0
            return len(events)

    def add(self, key: str, at: float) -> None:
        with self._lock:
            self._events[key].append(at)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class RateLimiter:
    """Allows at most ``max_per_window`` sends per recipient in a rolling window.

    Args:
        store: Counter storage, injected so deployments can share it
        max_per_window: Sends allowed per key in the window (default 10)
        window_seconds: Rolling window length (default one hour)
        enabled: When False every check passes and nothing is recorded
        clock: Time source in epoch seconds (tests pass a fake)
    """

    def __init__(
        self,
        store: CounterStore,
        max_per_window: int = 10,
        window_seconds: int = 3600,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.max_per_window = max_per_window
        self.window_seconds = window_seconds
        self.enabled = enabled
        self._clock = clock

    def can_send(self, key: str) -> bool:
        if not self.enabled:
            return True

        since = self._clock() - self.window_seconds
        count = self.store.count_since(key, since)
        allowed = count < self.max_per_window

        if not allowed:
            logger.info(
                f"Rate limit reached for recipient ({count}/{self.max_per_window})",
                extra={
                    "event": "rate_limit.denied",
                    "sent_in_window": count,
                    "limit": self.max_per_window,
                },
            )
        return allowed

    def record(self, key: str) -> None:
        if self.enabled:
            self.store.add(key, self._clock())


def recipient_key(
    phone: Optional[str], email: Optional[str], ticket_id: Optional[str] = None
) -> str:
    """Return the key a recipient is rate limited under.

    Phone numbers are compared without separators, email addresses
    case-insensitively. Without any contact the ticket id is used.
    """
    if phone:
        return "phone:" + _PHONE_NOISE.sub("", phone)
    if email:
        return "email:" + email.strip().lower()
    return f"ticket:{ticket_id}"
