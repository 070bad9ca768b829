"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List

from .duration import DurationParseError, parse_duration


def _seconds(value: Any) -> int:
    """Parse a raw duration value, returning 0 when it is unusable."""
    if not isinstance(value, str):
        return 0
    try:
        return parse_duration(value)
    except DurationParseError:
        return 0


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for settings that are valid but probably unintended.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    dispatch = config_dict.get("dispatch") or {}
    if isinstance(dispatch, dict):
        if dispatch.get("max_attempts") == 1:
            warning_messages.append(
                "dispatch.max_attempts is 1: failed notifications will never be retried"
            )
        batch_size = dispatch.get("batch_size", 10)
        concurrency = dispatch.get("concurrency", 4)
        if isinstance(batch_size, int) and isinstance(concurrency, int) and concurrency > batch_size:
            warning_messages.append(
                f"dispatch.concurrency ({concurrency}) exceeds batch_size ({batch_size}); "
                "extra workers will sit idle"
            )

    rate_limit = config_dict.get("rate_limit") or {}
    if isinstance(rate_limit, dict) and rate_limit.get("enabled") is False:
        warning_messages.append("Rate limiting is disabled; use this only in development")

    # A window narrower than the discovery interval lets tickets fall between runs
    survey = config_dict.get("survey") or {}
    schedule = config_dict.get("schedule") or {}
    if isinstance(survey, dict) and isinstance(schedule, dict):
        window = _seconds(survey.get("window_start", "24h")) - _seconds(survey.get("window_end", "23h"))
        interval = _seconds(schedule.get("survey_discovery_interval", "5m"))
        if window > 0 and interval > window:
            warning_messages.append(
                "schedule.survey_discovery_interval is longer than the survey window; "
                "some tickets will never be offered a survey"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
