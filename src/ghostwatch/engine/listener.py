"""Realtime trigger listener.

Keeps an explicit registry of which ACTIVE + REALTIME rules watch which
data source, and runs them when a metric update event for that source
arrives.
"""

from __future__ import annotations

import logging
import queue
import threading

from ghostwatch.errors import AlreadyRunningError, RuleNotFoundError
from ghostwatch.rules.models import Execution, MetricUpdateEvent, Rule, RuleStatus, TriggerType
from ghostwatch.store.rule_store import RuleStore

from .coordinator import ExecutionCoordinator

logger = logging.getLogger(__name__)

_STOP = object()


class TriggerListener:
    """Registry of realtime rules plus a queue-draining worker thread."""

    def __init__(self, store: RuleStore, coordinator: ExecutionCoordinator):
        self.store = store
        self.coordinator = coordinator
        self._registry: dict[str, set[str]] = {}
        self._registry_lock = threading.Lock()
        self._queue: queue.Queue = queue.Queue()
        self._thread: threading.Thread | None = None

    # Registry

    @staticmethod
    def is_listening_rule(rule: Rule) -> bool:
        return rule.status == RuleStatus.ACTIVE and rule.trigger_type == TriggerType.REALTIME

    def add(self, rule: Rule) -> None:
        source = rule.data_source
        if not source:
            logger.warning(f"Realtime rule {rule.id} has no dataSource; not registered")
            return
        with self._registry_lock:
            self._remove_locked(rule.id)
            self._registry.setdefault(source, set()).add(rule.id)
        logger.debug(f"Listening for '{source}' updates on rule {rule.id}")

    def remove(self, rule_id: str) -> None:
        with self._registry_lock:
            self._remove_locked(rule_id)

    def _remove_locked(self, rule_id: str) -> None:
        for source in list(self._registry):
            rule_ids = self._registry[source]
            rule_ids.discard(rule_id)
            if not rule_ids:
                del self._registry[source]

    def sync(self, rule: Rule) -> None:
        """Register or unregister ``rule`` to match its current state."""
        if self.is_listening_rule(rule):
            self.add(rule)
        else:
            self.remove(rule.id)

    def rebuild(self) -> int:
        """Rebuild the registry from the store. Returns the number of rules registered."""
        rules = self.store.list_rules(status=RuleStatus.ACTIVE, trigger_type=TriggerType.REALTIME)
        with self._registry_lock:
            self._registry.clear()
        for rule in rules:
            self.add(rule)
        logger.info(f"Realtime registry rebuilt with {len(rules)} rule(s)")
        return len(rules)

    def rules_for(self, source: str) -> set[str]:
        with self._registry_lock:
            return set(self._registry.get(source, ()))

    def registry(self) -> dict[str, set[str]]:
        with self._registry_lock:
            return {source: set(ids) for source, ids in self._registry.items()}

    # Events

    def publish(self, event: MetricUpdateEvent) -> None:
        """Queue an event for the worker thread."""
        if not self.is_running:
            logger.warning(f"Listener not started; '{event.source}' event queued")
        self._queue.put(event)

    def handle_event(self, event: MetricUpdateEvent) -> list[Execution]:
        """Run every registered rule for the event's source."""
        executions = []
        snapshot = event.records if event.complete else None

        for rule_id in sorted(self.rules_for(event.source)):
            rule = self.store.get_rule(rule_id)
            if rule is None or not self.is_listening_rule(rule):
                self.remove(rule_id)
                continue
            try:
                execution = self.coordinator.execute(
                    rule_id,
                    TriggerType.REALTIME,
                    snapshot=snapshot,
                    require_active=True,
                )
            except (AlreadyRunningError, RuleNotFoundError):
                continue
            except Exception:
                logger.exception(f"Realtime run of rule {rule_id} failed")
                continue
            if execution is not None:
                executions.append(execution)
        return executions

    # Worker

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._thread = threading.Thread(
            target=self._worker, name="ghostwatch-listener", daemon=True
        )
        self._thread.start()
        logger.info("Trigger listener started")

    def stop(self, timeout: float = 10.0) -> None:
        if not self.is_running:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Trigger listener stopped")

    def drain(self) -> None:
        """Block until every queued event has been handled."""
        self._queue.join()

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.handle_event(item)
            except Exception:
                logger.exception("Trigger listener failed to handle event")
            finally:
                self._queue.task_done()
