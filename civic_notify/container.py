"""Wiring of the long-lived service objects.

Everything is constructed once per process from explicit configuration
and shared by the CLI, the scheduler and the HTTP surface.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from civic_notify.channels import ChannelClient, build_channel_clients
from civic_notify.config.environment import EnvironmentConfig
from civic_notify.config.models import AppConfig
from civic_notify.domain.models import NotificationChannel
from civic_notify.notifications import (
    InMemoryCounterStore,
    NotificationDispatcher,
    NotificationService,
    RateLimiter,
)
from civic_notify.scheduler import (
    PENDING_SWEEP_JOB_ID,
    SURVEY_DISCOVERY_JOB_ID,
    PendingSweepTrigger,
    ScheduledJob,
    SurveyDiscoveryTrigger,
)


@dataclass
class ServiceContainer:
    """The service objects of one running process."""

    app_config: AppConfig
    env_config: EnvironmentConfig
    clients: Dict[NotificationChannel, ChannelClient]
    rate_limiter: RateLimiter
    dispatcher: NotificationDispatcher
    notification_service: NotificationService
    pending_sweep: PendingSweepTrigger
    survey_discovery: SurveyDiscoveryTrigger

    def scheduled_jobs(self) -> List[ScheduledJob]:
        """Jobs for SchedulerService, honouring the enable flags."""
        schedule = self.app_config.schedule
        jobs = [
            ScheduledJob(
                PENDING_SWEEP_JOB_ID,
                "Pending notification sweep",
                self.pending_sweep.run,
                schedule.pending_sweep_seconds,
            )
        ]
        if self.app_config.survey.enabled:
            jobs.append(
                ScheduledJob(
                    SURVEY_DISCOVERY_JOB_ID,
                    "Satisfaction survey discovery",
                    self.survey_discovery.run,
                    schedule.survey_discovery_seconds,
                )
            )
        return jobs

    def available_channels(self) -> List[str]:
        return [channel.value for channel, client in self.clients.items() if client.is_available()]


def build_container(
    app_config: AppConfig,
    env_config: EnvironmentConfig,
    clients: Optional[Dict[NotificationChannel, ChannelClient]] = None,
) -> ServiceContainer:
    """Construct the service objects.

    Args:
        app_config: Validated application configuration
        env_config: Provider credentials and endpoints
        clients: Channel clients to use instead of building them from env_config
    """
    clients = clients or build_channel_clients(env_config, app_config.dispatch)

    rate_limit = app_config.rate_limit
    rate_limiter = RateLimiter(
        InMemoryCounterStore(),
        max_per_window=rate_limit.max_per_window,
        window_seconds=rate_limit.window_seconds,
        enabled=rate_limit.enabled,
    )

    dispatcher = NotificationDispatcher(clients, rate_limiter, app_config.dispatch)
    notification_service = NotificationService(dispatcher, app_config.dispatch)

    return ServiceContainer(
        app_config=app_config,
        env_config=env_config,
        clients=clients,
        rate_limiter=rate_limiter,
        dispatcher=dispatcher,
        notification_service=notification_service,
        pending_sweep=PendingSweepTrigger(notification_service),
        survey_discovery=SurveyDiscoveryTrigger(
            app_config.survey, app_config.dispatch, env_config
        ),
    )
