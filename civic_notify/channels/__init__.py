"""Channel clients that deliver notifications to citizens.

- ChannelClient: Common contract (is_available / send)
- SMSClient, EmailClient: HTTP provider integrations
- ChatClient: Placeholder that is never available
- MessageRenderer: Jinja2 message templates per channel and type
- build_channel_clients: Builds one client per channel from configuration
"""

from .base import ChannelClient
from .chat import ChatClient
from .email import EmailClient
from .factory import build_channel_clients
from .models import (
    ChannelResult,
    ChannelTransportError,
    NotificationError,
    NotificationTemplateError,
    OutboundMessage,
)
from .sms import SMSClient
from .templates import MessageRenderer, build_message_context

__all__ = [
    "ChannelClient",
    "SMSClient",
    "EmailClient",
    "ChatClient",
    "build_channel_clients",
    "MessageRenderer",
    "build_message_context",
    "ChannelResult",
    "OutboundMessage",
    "NotificationError",
    "NotificationTemplateError",
    "ChannelTransportError",
]
