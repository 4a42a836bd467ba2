"""Rule actions: templating, transports and dispatch."""

from .base import ActionMessage, Transport
from .dispatcher import ActionDispatcher, DispatchJob
from .templating import render_template
from .transports import (
    DiscordTransport,
    EmailTransport,
    NotificationTransport,
    WebhookTransport,
)

__all__ = [
    "ActionDispatcher",
    "ActionMessage",
    "DiscordTransport",
    "DispatchJob",
    "EmailTransport",
    "NotificationTransport",
    "Transport",
    "WebhookTransport",
    "render_template",
]
