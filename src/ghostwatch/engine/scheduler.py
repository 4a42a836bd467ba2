"""Rule scheduler: a recurring tick that runs due SCHEDULED rules."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ghostwatch.errors import AlreadyRunningError, ConfigurationError, RuleNotFoundError
from ghostwatch.rules.models import Rule, RuleStatus, TriggerType, utcnow
from ghostwatch.rules.schedule import is_due, next_fire_after
from ghostwatch.store.rule_store import RuleStore

from .coordinator import ExecutionCoordinator

logger = logging.getLogger(__name__)

TICK_JOB_ID = "ghostwatch_tick"


class RuleScheduler:
    """Scans ACTIVE + SCHEDULED rules on a fixed interval.

    A rule is due when a crontab fire time falls after its last run (or its
    last update, for rules that never ran) and at or before now. Missed
    periods collapse into one run.
    """

    def __init__(
        self,
        store: RuleStore,
        coordinator: ExecutionCoordinator,
        tick_seconds: int = 30,
        timezone: str = "UTC",
        max_workers: int = 8,
    ):
        self.store = store
        self.coordinator = coordinator
        self.tick_seconds = tick_seconds
        self.timezone = timezone
        self.max_workers = max_workers

        self._scheduler = BackgroundScheduler(timezone=timezone)
        self._pool: ThreadPoolExecutor | None = None
        self._pending: set[str] = set()
        self._pending_lock = threading.Lock()
        self._running = False

    def start(self) -> None:
        """Start the recurring tick."""
        if self._running:
            return
        self._pool = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="ghostwatch-rule"
        )
        self._scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self.tick_seconds),
            id=TICK_JOB_ID,
            name="Rule scheduler tick",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        self._running = True
        logger.info(f"Rule scheduler started (tick every {self.tick_seconds}s)")

    def shutdown(self, wait: bool = True) -> None:
        """Stop ticking and wait for in-flight rule runs."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        if self._pool is not None:
            self._pool.shutdown(wait=wait)
            self._pool = None
        if self._running:
            self._running = False
            logger.info("Rule scheduler shutdown")

    @property
    def is_running(self) -> bool:
        return self._running

    def anchor(self, rule: Rule) -> datetime:
        return rule.last_executed_at or rule.updated_at

    def next_due(self, rule: Rule) -> datetime | None:
        """Next fire time after the rule's anchor, or None if unscheduled."""
        if rule.trigger_type != TriggerType.SCHEDULED or not rule.schedule:
            return None
        try:
            return next_fire_after(rule.schedule, self.anchor(rule), self.timezone)
        except ConfigurationError:
            return None

    def due_rules(self, now: datetime | None = None) -> list[Rule]:
        now = now or utcnow()
        due = []
        rules = self.store.list_rules(status=RuleStatus.ACTIVE, trigger_type=TriggerType.SCHEDULED)
        for rule in rules:
            try:
                if is_due(rule.schedule, self.anchor(rule), now, self.timezone):
                    due.append(rule)
            except ConfigurationError as e:
                logger.warning(f"Skipping rule {rule.id} with bad schedule: {e.message}")
        return due

    def tick(self, now: datetime | None = None) -> list[Future]:
        """Submit every due rule to the worker pool.

        Returns:
            Futures for the submitted runs (rules already queued are skipped)
        """
        now = now or utcnow()
        futures = []
        for rule in self.due_rules(now):
            with self._pending_lock:
                if rule.id in self._pending:
                    continue
                self._pending.add(rule.id)
            futures.append(self._submit(rule.id))
        if futures:
            logger.info(f"Scheduler tick submitted {len(futures)} rule(s)")
        return futures

    def _submit(self, rule_id: str) -> Future:
        if self._pool is None:
            # Not started: run inline so tick() is usable from the CLI
            future: Future = Future()
            try:
                future.set_result(self._run(rule_id))
            except Exception as e:
                future.set_exception(e)
            return future
        return self._pool.submit(self._run, rule_id)

    def _run(self, rule_id: str):
        try:
            return self.coordinator.execute(
                rule_id, TriggerType.SCHEDULED, require_active=True
            )
        except AlreadyRunningError:
            return None
        except RuleNotFoundError:
            logger.debug(f"Rule {rule_id} was deleted before it ran")
            return None
        except Exception:
            logger.exception(f"Scheduled run of rule {rule_id} failed")
            return None
        finally:
            with self._pending_lock:
                self._pending.discard(rule_id)
