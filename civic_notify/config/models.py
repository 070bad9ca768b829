"""Configuration schema models using Pydantic."""

from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


# Headroom on top of the worst-case send time when sizing the claim lease
CLAIM_TTL_SLACK_SECONDS = 30


def _check_duration(value: str, min_seconds: int, max_seconds: int, label: str) -> str:
    """Validate a duration string and return it unchanged."""
    try:
        seconds = parse_duration(value)
        validate_duration_range(seconds, min_seconds, max_seconds, label=label)
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return value


class DispatchConfig(BaseModel):
    """Delivery attempt settings for the dispatcher."""

    max_attempts: int = Field(
        3, ge=1, le=10, description="Dispatch attempts per notification before it is FAILED"
    )
    batch_size: int = Field(
        10, ge=1, le=100, description="Rows handled per pending sweep"
    )
    send_timeout_seconds: int = Field(
        10, ge=1, le=60, description="HTTP timeout for one channel send"
    )
    claim_ttl: str = Field(
        "2m", description="How long a claimed row is hidden from other workers"
    )
    concurrency: int = Field(
        4, ge=1, le=32, description="Worker threads used to dispatch a batch"
    )
    dispatch_on_enqueue: bool = Field(
        True, description="Attempt delivery immediately when a notification is queued"
    )

    @field_validator("claim_ttl")
    @classmethod
    def validate_claim_ttl(cls, v: str) -> str:
        return _check_duration(v, 10, 3600, "claim_ttl")

    @model_validator(mode="after")
    def validate_claim_covers_sends(self):
        """A claim must outlive the preferred send plus one fallback send.

        The HTTP timeout bounds the connect and the read wait separately,
        so one send may take up to twice the timeout before it fails.
        """
        minimum = self.min_claim_ttl_seconds
        if self.claim_ttl_seconds < minimum:
            raise ValueError(
                f"claim_ttl ({self.claim_ttl}) must be at least {minimum}s: two sends "
                f"of up to 2 x send_timeout_seconds ({self.send_timeout_seconds}s) each "
                f"plus {CLAIM_TTL_SLACK_SECONDS}s"
            )
        return self

    @property
    def min_claim_ttl_seconds(self) -> int:
        return 4 * self.send_timeout_seconds + CLAIM_TTL_SLACK_SECONDS

    @property
    def claim_ttl_seconds(self) -> int:
        return parse_duration(self.claim_ttl)


class ScheduleConfig(BaseModel):
    """Intervals for the periodic triggers."""

    enabled: bool = Field(True, description="Run triggers on a schedule in daemon mode")
    pending_sweep_interval: str = Field("1m", description="Interval between pending sweeps")
    survey_discovery_interval: str = Field(
        "5m", description="Interval between satisfaction survey discovery runs"
    )

    @field_validator("pending_sweep_interval")
    @classmethod
    def validate_sweep_interval(cls, v: str) -> str:
        return _check_duration(v, 10, 3600, "pending_sweep_interval")

    @field_validator("survey_discovery_interval")
    @classmethod
    def validate_survey_interval(cls, v: str) -> str:
        return _check_duration(v, 60, 86400, "survey_discovery_interval")

    @property
    def pending_sweep_seconds(self) -> int:
        return parse_duration(self.pending_sweep_interval)

    @property
    def survey_discovery_seconds(self) -> int:
        return parse_duration(self.survey_discovery_interval)


class SurveyConfig(BaseModel):
    """Satisfaction survey discovery window.

    A ticket is eligible when it was replied to between ``window_start``
    and ``window_end`` ago. The window must be at least as wide as the
    discovery interval or tickets can slip through between runs.
    """

    enabled: bool = Field(True, description="Enable satisfaction survey discovery")
    window_start: str = Field("24h", description="Oldest reply age considered")
    window_end: str = Field("23h", description="Youngest reply age considered")
    max_tickets_per_run: int = Field(
        100, ge=1, le=1000, description="Tickets examined per discovery run"
    )

    @field_validator("window_start", "window_end")
    @classmethod
    def validate_window(cls, v: str) -> str:
        return _check_duration(v, 60, 30 * 86400, "survey window")

    @model_validator(mode="after")
    def validate_window_order(self):
        if self.window_start_seconds <= self.window_end_seconds:
            raise ValueError(
                f"survey window_start ({self.window_start}) must be older than "
                f"window_end ({self.window_end})"
            )
        return self

    @property
    def window_start_seconds(self) -> int:
        return parse_duration(self.window_start)

    @property
    def window_end_seconds(self) -> int:
        return parse_duration(self.window_end)


class RateLimitConfig(BaseModel):
    """Per-recipient flood guard."""

    enabled: bool = Field(True, description="Disable to skip rate limiting (local development)")
    max_per_window: int = Field(
        10, ge=1, le=1000, description="Notifications allowed per recipient per window"
    )
    window: str = Field("1h", description="Rolling window length")

    @field_validator("window")
    @classmethod
    def validate_window(cls, v: str) -> str:
        return _check_duration(v, 60, 86400, "rate_limit window")

    @property
    def window_seconds(self) -> int:
        return parse_duration(self.window)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the notification service."""

    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    survey: SurveyConfig = Field(default_factory=SurveyConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
