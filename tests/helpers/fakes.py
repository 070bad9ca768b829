"""In-memory channel clients for dispatcher and service tests.

FakeChannelClient records every message it is asked to send and answers
with scripted results instead of calling a provider. It is safe to use
from the dispatcher worker threads.
"""

import threading
import time
from typing import Callable, Dict, Iterable, List, Optional

from civic_notify.channels import ChannelClient, ChannelResult, OutboundMessage
from civic_notify.domain.models import NotificationChannel


class FakeChannelClient(ChannelClient):
    """Channel client with scripted availability and results.

    Args:
        channel: Channel the client pretends to deliver through
        available: Value returned by is_available()
        results: Results returned in order; once exhausted every send succeeds
        handler: Called with each message instead of using ``results``;
            may raise to simulate a programmer error
        delay: Seconds to sleep inside send() (simulates network latency)
        render: Render the SMS template before answering, like a real client
    """

    def __init__(
        self,
        channel: NotificationChannel,
        available: bool = True,
        results: Optional[Iterable[ChannelResult]] = None,
        handler: Optional[Callable[[OutboundMessage], ChannelResult]] = None,
        delay: float = 0.0,
        render: bool = False,
    ):
        super().__init__(timeout=1)
        self.channel = channel
        self.available = available
        self.handler = handler
        self.delay = delay
        self.render = render
        self.sent: List[OutboundMessage] = []
        self._results = list(results or [])
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        return self.available

    def send(self, message: OutboundMessage) -> ChannelResult:
        with self._lock:
            self.sent.append(message)
            scripted = self._results.pop(0) if self._results else None
            count = len(self.sent)

        if self.delay:
            time.sleep(self.delay)

        if self.render:
            self.renderer.render_sms(message.type, message.payload)

        if self.handler is not None:
            return self.handler(message)

        if scripted is not None:
            return scripted

        return ChannelResult(
            success=True,
            channel=self.channel,
            message_id=f"{self.channel.value.lower()}-{count}",
            response_data={"success": True},
            request_data={"to": "fake"},
        )



def make_clients(
    sms: Optional[FakeChannelClient] = None,
    email: Optional[FakeChannelClient] = None,
    chat: Optional[FakeChannelClient] = None,
) -> Dict[NotificationChannel, ChannelClient]:
    """Build a full client mapping; unspecified channels are unavailable."""

    def unavailable(channel):
        return FakeChannelClient(channel, available=False)

    return {
        NotificationChannel.CHAT: chat or unavailable(NotificationChannel.CHAT),
        NotificationChannel.SMS: sms or unavailable(NotificationChannel.SMS),
        NotificationChannel.EMAIL: email or unavailable(NotificationChannel.EMAIL),
    }
