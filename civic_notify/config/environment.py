"""Environment variable loading and validation.

Provider credentials and deployment endpoints come from the environment
(``.env`` in development). A missing provider credential is not an
error: the matching channel simply reports itself unavailable.
"""

import os
import re
from typing import Optional

from .exceptions import ConfigurationError

DEFAULT_SMS_BASE_URL = "https://api.sms.to"
DEFAULT_SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"
DEFAULT_FROM_EMAIL = "noreply@civicaid.com"
DEFAULT_FROM_NAME = "CivicAid"
DEFAULT_DATABASE_URL = "sqlite:///./data/civic_notify.db"

_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_URL_PATTERN = re.compile(r"^https?://[^\s/$.?#].[^\s]*$")
_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        sms_api_key: Optional[str] = None,
        sms_sender_id: Optional[str] = None,
        sms_base_url: Optional[str] = None,
        sms_callback_url: Optional[str] = None,
        sendgrid_api_key: Optional[str] = None,
        sendgrid_from_email: Optional[str] = None,
        email_from_name: Optional[str] = None,
        sendgrid_api_url: Optional[str] = None,
        public_app_url: Optional[str] = None,
        log_level: Optional[str] = None,
        database_url: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        """Initialize environment configuration."""
        self.sms_api_key = sms_api_key
        self.sms_sender_id = sms_sender_id
        self.sms_base_url = (sms_base_url or DEFAULT_SMS_BASE_URL).rstrip("/")
        self.sms_callback_url = sms_callback_url
        self.sendgrid_api_key = sendgrid_api_key
        self.sendgrid_from_email = sendgrid_from_email or DEFAULT_FROM_EMAIL
        self.email_from_name = email_from_name or DEFAULT_FROM_NAME
        self.sendgrid_api_url = sendgrid_api_url or DEFAULT_SENDGRID_API_URL
        self.public_app_url = (public_app_url or "http://localhost:3000").rstrip("/")
        self.log_level = log_level
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.environment = environment or "local"


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Optional environment variables:
    - SMS_API_KEY, SMS_SENDER_ID: SMS provider credentials (SMS disabled if unset)
    - SMS_BASE_URL: SMS provider base URL (default: https://api.sms.to)
    - SMS_CALLBACK_URL: Delivery report callback passed to the SMS provider
    - SENDGRID_API_KEY: Email provider key (Email disabled if unset)
    - SENDGRID_FROM_EMAIL, EMAIL_FROM_NAME: Sender identity
    - SENDGRID_API_URL: Override for the mail send endpoint
    - PUBLIC_APP_URL: Base URL of the citizen-facing app (timeline/survey links)
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - DATABASE_URL: SQLAlchemy database URL
    - ENVIRONMENT: Environment label added to every log record

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If a provided variable is malformed
    """
    errors = []

    sms_api_key = os.getenv("SMS_API_KEY")
    sms_sender_id = os.getenv("SMS_SENDER_ID")
    sms_base_url = os.getenv("SMS_BASE_URL")
    sms_callback_url = os.getenv("SMS_CALLBACK_URL")
    sendgrid_api_key = os.getenv("SENDGRID_API_KEY")
    sendgrid_from_email = os.getenv("SENDGRID_FROM_EMAIL")
    email_from_name = os.getenv("EMAIL_FROM_NAME")
    sendgrid_api_url = os.getenv("SENDGRID_API_URL")
    public_app_url = os.getenv("PUBLIC_APP_URL")
    log_level = os.getenv("LOG_LEVEL")
    database_url = os.getenv("DATABASE_URL")
    environment = os.getenv("ENVIRONMENT")

    for name, value in (
        ("SMS_BASE_URL", sms_base_url),
        ("SMS_CALLBACK_URL", sms_callback_url),
        ("SENDGRID_API_URL", sendgrid_api_url),
        ("PUBLIC_APP_URL", public_app_url),
    ):
        if value and not _URL_PATTERN.match(value):
            errors.append(f"Invalid {name}: '{value}'. Must be an http(s) URL.")

    if sendgrid_from_email and not _EMAIL_PATTERN.match(sendgrid_from_email):
        errors.append(f"Invalid email address format in SENDGRID_FROM_EMAIL: '{sendgrid_from_email}'")

    if log_level and log_level.upper() not in _VALID_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(_VALID_LEVELS)}"
        )

    if sms_api_key and not sms_sender_id:
        errors.append("SMS_API_KEY is set but SMS_SENDER_ID is not. Both are needed to send SMS.")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Check that URLs include the http:// or https:// scheme",
            ],
        )

    return EnvironmentConfig(
        sms_api_key=sms_api_key,
        sms_sender_id=sms_sender_id,
        sms_base_url=sms_base_url,
        sms_callback_url=sms_callback_url,
        sendgrid_api_key=sendgrid_api_key,
        sendgrid_from_email=sendgrid_from_email,
        email_from_name=email_from_name,
        sendgrid_api_url=sendgrid_api_url,
        public_app_url=public_app_url,
        log_level=log_level.upper() if log_level else None,
        database_url=database_url,
        environment=environment,
    )
