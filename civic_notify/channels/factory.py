"""Factory function for instantiating the channel clients."""

import logging
from typing import Dict, Optional

from civic_notify.config.environment import EnvironmentConfig
from civic_notify.config.models import DispatchConfig
from civic_notify.domain.models import NotificationChannel

from .base import ChannelClient
from .chat import ChatClient
from .email import EmailClient
from .sms import SMSClient
from .templates import MessageRenderer

logger = logging.getLogger(__name__)


def build_channel_clients(
    env_config: EnvironmentConfig,
    dispatch_config: DispatchConfig,
    renderer: Optional[MessageRenderer] = None,
) -> Dict[NotificationChannel, ChannelClient]:
    """Create one client per channel from configuration.

    Clients are built once per process and reused across sweeps. A client
    whose credentials are missing is still returned; it reports itself
    unavailable and the dispatcher skips it.

    Args:
        env_config: Provider credentials and endpoints
        dispatch_config: Dispatch settings (per-send timeout)
        renderer: Shared message renderer (a new one is created if None)

    Returns:
        Mapping of every NotificationChannel to its client

    Example:
        >>> clients = build_channel_clients(load_environment_config(), DispatchConfig())
        >>> clients[NotificationChannel.SMS].is_available()
        False
    """
    renderer = renderer or MessageRenderer()
    timeout = dispatch_config.send_timeout_seconds

    clients: Dict[NotificationChannel, ChannelClient] = {
        NotificationChannel.CHAT: ChatClient(timeout=timeout, renderer=renderer),
        NotificationChannel.SMS: SMSClient(
            api_key=env_config.sms_api_key,
            sender_id=env_config.sms_sender_id,
            base_url=env_config.sms_base_url,
            callback_url=env_config.sms_callback_url,
            timeout=timeout,
            renderer=renderer,
        ),
        NotificationChannel.EMAIL: EmailClient(
            api_key=env_config.sendgrid_api_key,
            from_email=env_config.sendgrid_from_email,
            from_name=env_config.email_from_name,
            api_url=env_config.sendgrid_api_url,
            timeout=timeout,
            renderer=renderer,
        ),
    }

    logger.info(
        "Channel clients configured",
        extra={
            "event": "channels.configured",
            "available_channels": [
                channel.value for channel, client in clients.items() if client.is_available()
            ],
        },
    )
    return clients
