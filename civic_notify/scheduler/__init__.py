"""Periodic triggers and the scheduler that runs them."""

from .models import SurveyDiscoveryResult, SweepResult
from .service import (
    PENDING_SWEEP_JOB_ID,
    SURVEY_DISCOVERY_JOB_ID,
    ScheduledJob,
    SchedulerService,
)
from .triggers import PendingSweepTrigger, SurveyDiscoveryTrigger

__all__ = [
    "PendingSweepTrigger",
    "SurveyDiscoveryTrigger",
    "SweepResult",
    "SurveyDiscoveryResult",
    "SchedulerService",
    "ScheduledJob",
    "PENDING_SWEEP_JOB_ID",
    "SURVEY_DISCOVERY_JOB_ID",
]
