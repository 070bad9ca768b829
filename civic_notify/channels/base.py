"""Base channel client with shared HTTP handling.

Every channel client implements the same small contract:
``is_available()`` reports whether credentials are configured, and
``send()`` returns a ChannelResult. Expected failures (missing contact,
provider rejection, network error, timeout) are returned as failed
results; only programmer errors such as NotificationTemplateError
propagate.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from civic_notify.domain.models import NotificationChannel
from civic_notify.logging import get_logger

from .models import ChannelResult, ChannelTransportError, OutboundMessage
from .templates import MessageRenderer

logger = get_logger(__name__, component="channel")

DEFAULT_TIMEOUT_SECONDS = 10
USER_AGENT = "CivicNotify/0.1"


class ChannelClient(ABC):
    """Base class for all channel clients.

    Attributes:
        channel: The channel this client delivers through
        timeout: HTTP request timeout in seconds for one send
        renderer: Message renderer used to build channel content
    """

    channel: NotificationChannel

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        renderer: Optional[MessageRenderer] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.renderer = renderer or MessageRenderer()

        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": USER_AGENT})

    @abstractmethod
    def is_available(self) -> bool:
        """Return True iff the credentials this channel needs are configured."""

    @abstractmethod
    def send(self, message: OutboundMessage) -> ChannelResult:
        """Deliver one message.

        Returns:
            ChannelResult describing the outcome. Never raises for
            expected failures.

        Raises:
            NotificationTemplateError: If the message cannot be rendered
        """

    def _post_json(
        self,
        url: str,
        json_data: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """POST a JSON body and return the raw response, whatever its status.

        Raises:
            ChannelTransportError: On timeout or any other transport failure
        """
        try:
            logger.debug(
                f"HTTP POST request to {url}",
                extra={
                    "event": "channel.send.request",
                    "channel": self.channel.value,
                    "url": url,
                    "timeout": self.timeout,
                },
            )
            return self._session.post(url, json=json_data, headers=headers, timeout=self.timeout)

        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Request to {url} timed out after {self.timeout} seconds",
                extra={
                    "event": "channel.send.timeout",
                    "channel": self.channel.value,
                    "url": url,
                    "timeout": self.timeout,
                },
            )
            raise ChannelTransportError(
                f"Request timed out after {self.timeout} seconds", url=url
            ) from e
        except requests.exceptions.RequestException as e:
            logger.warning(
                f"Request to {url} failed: {e}",
                extra={
                    "event": "channel.send.transport_error",
                    "channel": self.channel.value,
                    "error_type": type(e).__name__,
                    "url": url,
                },
            )
            raise ChannelTransportError(f"Request failed: {e}", url=url) from e

    @staticmethod
    def _json_body(response: requests.Response) -> Optional[Any]:
        """Parse a response body as JSON, returning None when it isn't JSON."""
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    def close(self) -> None:
        self._session.close()
