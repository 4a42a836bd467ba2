"""Action transports."""

from .discord import DiscordTransport
from .email_channel import EmailTransport
from .notification import NotificationSink, NotificationTransport
from .webhook import WebhookTransport

__all__ = [
    "DiscordTransport",
    "EmailTransport",
    "NotificationSink",
    "NotificationTransport",
    "WebhookTransport",
]
