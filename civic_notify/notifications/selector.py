"""Channel selection and the fallback chain.

The chain is fixed: CHAT -> SMS -> EMAIL. A notification starts on the
channel chosen at enqueue time and may fall back to later channels in
the chain, never to earlier ones.
"""

from typing import List, Optional

from civic_notify.domain.models import NotificationChannel

FALLBACK_ORDER = (
    NotificationChannel.CHAT,
    NotificationChannel.SMS,
    NotificationChannel.EMAIL,
)


def select_channel(
    phone: Optional[str],
    email: Optional[str],
    override: Optional[NotificationChannel] = None,
) -> NotificationChannel:
    """Pick the initial channel for a notification.

    An explicit override always wins. Otherwise SMS when a phone number is
    present, else EMAIL. EMAIL is also returned when neither contact is
    present; the send then fails as a recipient error.
    """
    if override is not None:
        return NotificationChannel(override)
    if phone:
        return NotificationChannel.SMS
    return NotificationChannel.EMAIL


def fallback_channel(channel: NotificationChannel) -> Optional[NotificationChannel]:
    """Return the next channel in the chain, or None after EMAIL."""
    index = FALLBACK_ORDER.index(channel)
    if index + 1 < len(FALLBACK_ORDER):
        return FALLBACK_ORDER[index + 1]
    return None


def fallback_chain(channel: NotificationChannel) -> List[NotificationChannel]:
    """Return every channel after ``channel``, in fallback order."""
    index = FALLBACK_ORDER.index(channel)
    return list(FALLBACK_ORDER[index + 1:])


def recipient_for(
    channel: NotificationChannel, phone: Optional[str], email: Optional[str]
) -> Optional[str]:
    """Return the address a channel delivers to.

    Chat has no address of its own and uses the phone number the
    messenger account is registered with.
    """
    if channel is NotificationChannel.EMAIL:
        return email
    return phone
