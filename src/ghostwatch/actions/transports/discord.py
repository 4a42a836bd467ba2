"""Discord message transport."""

from __future__ import annotations

import logging

import requests

from ghostwatch.errors import ActionDispatchError
from ghostwatch.http import get_sync_client

from ..base import ActionMessage, Transport

logger = logging.getLogger(__name__)

# Discord uses decimal colors
_EMBED_COLOR = 15844367  # Orange
_MAX_FIELDS = 10


class DiscordTransport(Transport):
    """Send a rule match to Discord via webhook embed."""

    def __init__(
        self,
        default_webhook_url: str | None = None,
        username: str = "Ghostwatch",
        timeout: float = 10.0,
    ):
        """Initialize Discord transport.

        Args:
            default_webhook_url: Used when the action has no ``url``
            username: Bot username
            timeout: Request timeout in seconds
        """
        self.default_webhook_url = default_webhook_url
        self.username = username
        self.timeout = timeout

    def name(self) -> str:
        return "discord"

    def build_payload(self, message: ActionMessage) -> dict:
        embed = {
            "title": f"\U0001f47b {message.rule_name or 'Rule matched'}",
            "description": message.message,
            "color": _EMBED_COLOR,
            "fields": self._build_fields(message.record),
            "footer": {"text": "Ghostwatch Rule Engine"},
            "timestamp": message.timestamp.isoformat(),
        }
        return {"username": self.username, "embeds": [embed]}

    def _build_fields(self, record: dict) -> list:
        fields = []
        for key, value in record.items():
            if isinstance(value, (str, int, float, bool)):
                fields.append({"name": key, "value": str(value), "inline": True})
            if len(fields) >= _MAX_FIELDS:
                break
        return fields

    def send(self, message: ActionMessage) -> None:
        url = message.config.get("url") or self.default_webhook_url
        if not url:
            raise ActionDispatchError(
                "No Discord webhook URL configured", action_type="DISCORD_MESSAGE"
            )

        client = get_sync_client()
        try:
            response = client.post(url, json=self.build_payload(message), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise ActionDispatchError(
                f"Discord request failed: {e}", action_type="DISCORD_MESSAGE"
            ) from e

        if response.status_code not in (200, 204):
            raise ActionDispatchError(
                f"Discord returned HTTP {response.status_code}",
                action_type="DISCORD_MESSAGE",
                status_code=response.status_code,
            )
