"""Chat (messenger) channel client.

No chat provider is integrated yet. The client reports itself as
unavailable so the dispatcher always moves on to the next channel in the
fallback chain, and it defines no message format.
"""

from civic_notify.domain.models import NotificationChannel

from .base import ChannelClient
from .models import ChannelResult, OutboundMessage


class ChatClient(ChannelClient):
    """Placeholder for the chat channel."""

    channel = NotificationChannel.CHAT

    def is_available(self) -> bool:
        return False

    def send(self, message: OutboundMessage) -> ChannelResult:
        return ChannelResult.failure(self.channel, "Chat channel not implemented")
