"""Notification delivery: channel selection, rate limiting, dispatch and intake.

- NotificationService: queue_notification() intake and pending processing
- NotificationDispatcher: claim, send with fallback, log, transition
- RateLimiter / InMemoryCounterStore: per-recipient flood guard
- select_channel / fallback_chain: channel routing rules
"""

from .dispatcher import NotificationDispatcher
from .models import BatchResult, DispatchResult
from .rate_limit import CounterStore, InMemoryCounterStore, RateLimiter, recipient_key
from .selector import fallback_chain, fallback_channel, recipient_for, select_channel
from .service import NotificationService, build_queue_entry, new_queue_id

__all__ = [
    "NotificationService",
    "NotificationDispatcher",
    "DispatchResult",
    "BatchResult",
    "RateLimiter",
    "CounterStore",
    "InMemoryCounterStore",
    "recipient_key",
    "select_channel",
    "fallback_channel",
    "fallback_chain",
    "recipient_for",
    "build_queue_entry",
    "new_queue_id",
]
