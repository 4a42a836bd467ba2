"""Generic webhook transport."""

from __future__ import annotations

import json
import logging

import requests

from ghostwatch.errors import ActionDispatchError
from ghostwatch.http import get_sync_client

from ..base import ActionMessage, Transport

logger = logging.getLogger(__name__)


class WebhookTransport(Transport):
    """POST the action payload as JSON to ``config.url``.

    Non-2xx responses and network errors are failures. No retry.
    """

    def __init__(self, timeout: float = 10.0, headers: dict | None = None):
        """Initialize webhook transport.

        Args:
            timeout: Request timeout in seconds
            headers: Extra headers sent with every request
        """
        self.timeout = timeout
        self.headers = headers or {}

    def name(self) -> str:
        return "webhook"

    def send(self, message: ActionMessage) -> None:
        url = message.config.get("url")
        if not url:
            raise ActionDispatchError("WEBHOOK action has no 'url'", action_type="WEBHOOK")

        headers = {
            "Content-Type": "application/json",
            **self.headers,
            **(message.config.get("headers") or {}),
        }
        data = json.dumps(message.to_dict(), default=str).encode("utf-8")

        client = get_sync_client()
        try:
            response = client.post(url, data=data, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise ActionDispatchError("Request timeout", action_type="WEBHOOK") from e
        except requests.exceptions.RequestException as e:
            raise ActionDispatchError(f"Connection error: {e}", action_type="WEBHOOK") from e

        if not response.ok:
            raise ActionDispatchError(
                f"HTTP {response.status_code}",
                action_type="WEBHOOK",
                status_code=response.status_code,
            )
        logger.debug(f"Webhook delivered: {url}")
