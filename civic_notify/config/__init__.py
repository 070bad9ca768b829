"""Configuration management for the notification service."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config
from .models import (
    AppConfig,
    DispatchConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    RateLimitConfig,
    ScheduleConfig,
    SurveyConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "DispatchConfig",
    "ScheduleConfig",
    "SurveyConfig",
    "RateLimitConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
