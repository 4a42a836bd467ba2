"""Base transport interface for rule actions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class ActionMessage:
    """A rendered action ready to hand to a transport."""

    action_type: str
    message: str
    record: dict[str, Any]
    config: dict[str, Any] = field(default_factory=dict)
    rule_id: str | None = None
    rule_name: str | None = None
    owner_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        return {
            "rule": {"id": self.rule_id, "name": self.rule_name},
            "record": self.record,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


class Transport(ABC):
    """Base class for action transports."""

    @abstractmethod
    def send(self, message: ActionMessage) -> None:
        """Send one rendered action.

        Raises:
            ActionDispatchError: if the message could not be delivered
        """

    @abstractmethod
    def name(self) -> str:
        """Get transport name."""
