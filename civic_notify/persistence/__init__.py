"""Persistence layer for notification delivery state.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes
    - NotificationQueueRepository: queue rows and their state transitions
    - NotificationLogRepository: append-only attempt log
    - TicketRepository: ticket reads and the survey-sent marker

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures
    - RecordNotFoundError: Required record not found
    - DataIntegrityError: Constraint violations

Example usage:
    >>> from civic_notify.persistence import init_database, get_session
    >>> from civic_notify.persistence import NotificationQueueRepository
    >>>
    >>> init_database("sqlite:///./data/civic_notify.db")
    >>>
    >>> with get_session() as session:
    ...     entry = NotificationQueueRepository(session).get("ntf_abc123")
"""

# Database initialization and session management
from .database import close_database, get_engine, get_session, init_database

# Repository classes
from .repositories import (
    NotificationLogRepository,
    NotificationQueueRepository,
    TicketRepository,
)

# Exceptions
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "NotificationQueueRepository",
    "NotificationLogRepository",
    "TicketRepository",
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
