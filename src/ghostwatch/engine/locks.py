"""Per-rule execution locks.

At most one execution of a rule may be in flight. ``InMemoryRuleLockManager``
covers a single process; ``DatabaseLeaseManager`` stores TTL leases in the
shared database so that several replicas agree.
"""

from __future__ import annotations

import logging
import os
import socket
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from ghostwatch.errors import AlreadyRunningError

if TYPE_CHECKING:
    from ghostwatch.state.backends import DatabaseBackend

logger = logging.getLogger(__name__)


def _stamp(value: datetime) -> str:
    # Fixed width so lease timestamps compare as text
    return value.isoformat(timespec="microseconds")


class RuleLockManager(ABC):
    """Non-blocking try-lock keyed by rule id."""

    @abstractmethod
    def try_acquire(self, rule_id: str) -> bool:
        """Take the lock for ``rule_id``; False if it is held.

        Storage errors other than losing the race propagate.
        """

    @abstractmethod
    def release(self, rule_id: str) -> None:
        """Release the lock for ``rule_id`` if this manager holds it."""

    @abstractmethod
    def is_locked(self, rule_id: str) -> bool:
        """True while an execution of ``rule_id`` holds the lock."""

    @contextmanager
    def hold(self, rule_id: str) -> Generator[None, None, None]:
        """Hold the lock for the duration of the block.

        Raises:
            AlreadyRunningError: if the lock is already held
        """
        if not self.try_acquire(rule_id):
            raise AlreadyRunningError(rule_id)
        try:
            yield
        finally:
            self.release(rule_id)


class InMemoryRuleLockManager(RuleLockManager):
    """Process-local lock set."""

    def __init__(self):
        self._held: set[str] = set()
        self._lock = threading.Lock()

    def try_acquire(self, rule_id: str) -> bool:
        with self._lock:
            if rule_id in self._held:
                return False
            self._held.add(rule_id)
            return True

    def release(self, rule_id: str) -> None:
        with self._lock:
            self._held.discard(rule_id)

    def is_locked(self, rule_id: str) -> bool:
        with self._lock:
            return rule_id in self._held


class DatabaseLeaseManager(RuleLockManager):
    """Leases stored as rows in ``rule_leases``.

    A lease expires after ``ttl_seconds`` so a crashed holder cannot block a
    rule forever. Expired leases are removed before each acquire.
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS rule_leases (
            rule_id TEXT PRIMARY KEY,
            holder TEXT NOT NULL,
            acquired_at TIMESTAMP NOT NULL,
            expires_at TIMESTAMP NOT NULL
        );
    """

    def __init__(self, backend: DatabaseBackend, ttl_seconds: int = 900, holder: str | None = None):
        """Initialize the lease manager.

        Args:
            backend: Shared database backend
            ttl_seconds: Lease lifetime
            holder: Identity written to lease rows (defaults to host:pid:uuid)
        """
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self.holder = holder or f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        self.backend.executescript(self.SCHEMA)

    def try_acquire(self, rule_id: str) -> bool:
        now = datetime.now(UTC)
        acquired_at = _stamp(now)
        expires_at = _stamp(now + timedelta(seconds=self.ttl_seconds))
        try:
            with self.backend.transaction():
                self.backend.execute(
                    "DELETE FROM rule_leases WHERE rule_id = ? AND expires_at <= ?",
                    (rule_id, acquired_at),
                )
                cursor = self.backend.execute(
                    """
                    INSERT INTO rule_leases (rule_id, holder, acquired_at, expires_at)
                    SELECT ?, ?, ?, ?
                    WHERE NOT EXISTS (SELECT 1 FROM rule_leases WHERE rule_id = ?)
                    """,
                    (rule_id, self.holder, acquired_at, expires_at, rule_id),
                )
                acquired = cursor.rowcount == 1
        except self.backend.integrity_errors as e:
            # Primary key race between replicas
            logger.debug(f"Lease insert for rule {rule_id} lost a race: {e}")
            return False
        return acquired

    def release(self, rule_id: str) -> None:
        with self.backend.transaction():
            self.backend.execute(
                "DELETE FROM rule_leases WHERE rule_id = ? AND holder = ?",
                (rule_id, self.holder),
            )

    def is_locked(self, rule_id: str) -> bool:
        row = self.backend.fetchone(
            "SELECT 1 AS held FROM rule_leases WHERE rule_id = ? AND expires_at > ?",
            (rule_id, _stamp(datetime.now(UTC))),
        )
        return row is not None
