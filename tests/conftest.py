"""Pytest configuration and fixtures."""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ghostwatch.actions.dispatcher import ActionDispatcher  # noqa: E402
from ghostwatch.actions.transports import NotificationTransport  # noqa: E402
from ghostwatch.config.settings import Settings  # noqa: E402
from ghostwatch.datasources import DataSourceRegistry, StaticDataSource  # noqa: E402
from ghostwatch.rules.models import ActionType  # noqa: E402
from ghostwatch.state.backends import SQLiteBackend  # noqa: E402
from ghostwatch.store import RuleStore  # noqa: E402
from ghostwatch.utils.retry import RetryConfig  # noqa: E402

GHOST_RECORDS = [
    {"userId": "u1", "username": "botuser", "typingCount": 40, "messageCount": 1, "ghostScore": 91},
    {"userId": "u2", "username": "alice", "typingCount": 12, "messageCount": 30, "ghostScore": 80},
    {"userId": "u3", "username": "bob", "typingCount": 3, "messageCount": 2, "ghostScore": 35},
]


class RecordingTransport:
    """Transport double that records messages and can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def name(self) -> str:
        return "recording"

    def send(self, message) -> None:
        from ghostwatch.errors import ActionDispatchError

        if self.fail:
            raise ActionDispatchError("boom", action_type=message.action_type)
        self.sent.append(message)


@pytest.fixture
def backend():
    """Create a temporary SQLite backend."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = os.path.join(tmpdir, "test.db")
        backend = SQLiteBackend(db_path=db_path)
        yield backend
        backend.close()


@pytest.fixture
def store(backend):
    return RuleStore(backend)


@pytest.fixture
def ghost_source():
    return StaticDataSource("ghosts", GHOST_RECORDS)


@pytest.fixture
def registry(ghost_source):
    registry = DataSourceRegistry(RetryConfig(max_attempts=3, base_delay=0, jitter=False))
    registry.register(ghost_source)
    return registry


@pytest.fixture
def webhook_transport():
    return RecordingTransport()


@pytest.fixture
def dispatcher(store, webhook_transport):
    dispatcher = ActionDispatcher(max_workers=2)
    dispatcher.register(ActionType.WEBHOOK, webhook_transport)
    dispatcher.register(ActionType.NOTIFICATION, NotificationTransport(store))
    yield dispatcher
    dispatcher.shutdown()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'engine.db'}",
        scheduler_tick_seconds=3600,
        fetch_backoff_seconds=0,
    )
