"""In-app notification transport."""

from __future__ import annotations

import logging
from typing import Protocol

from ghostwatch.errors import ActionDispatchError
from ghostwatch.rules.models import InAppNotification

from ..base import ActionMessage, Transport

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def add_notification(self, notification: InAppNotification) -> InAppNotification: ...


class NotificationTransport(Transport):
    """Persist the rendered message as an in-app notification for the rule owner."""

    def __init__(self, sink: NotificationSink):
        self.sink = sink

    def name(self) -> str:
        return "notification"

    def send(self, message: ActionMessage) -> None:
        if not message.owner_id:
            raise ActionDispatchError(
                "NOTIFICATION action needs a rule owner", action_type="NOTIFICATION"
            )
        notification = InAppNotification(
            owner_id=message.owner_id,
            rule_id=message.rule_id,
            message=message.message,
            payload=message.record,
        )
        try:
            self.sink.add_notification(notification)
        except Exception as e:
            raise ActionDispatchError(
                f"Failed to store notification: {e}", action_type="NOTIFICATION"
            ) from e
