"""Shared pytest fixtures."""

import pytest

from civic_notify.logging.context import clear_log_context
from civic_notify.persistence import close_database, init_database

ENV_VARS = (
    "SMS_API_KEY",
    "SMS_SENDER_ID",
    "SMS_BASE_URL",
    "SMS_CALLBACK_URL",
    "SENDGRID_API_KEY",
    "SENDGRID_FROM_EMAIL",
    "EMAIL_FROM_NAME",
    "SENDGRID_API_URL",
    "PUBLIC_APP_URL",
    "LOG_LEVEL",
    "DATABASE_URL",
    "ENVIRONMENT",
)


@pytest.fixture
def db(tmp_path):
    """File-backed SQLite database (worker threads need a shared file, not :memory:)."""
    init_database(f"sqlite:///{tmp_path / 'test.db'}")
    yield
    close_database()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every service environment variable for the test."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture(autouse=True)
def reset_log_context():
    clear_log_context()
    yield
    clear_log_context()
