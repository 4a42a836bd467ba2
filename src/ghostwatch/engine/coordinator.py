"""Execution coordinator: fetch, evaluate, dispatch, record.

The coordinator is the only writer of execution records. One call to
``execute`` produces at most one Execution:

    RUNNING  --[fetch + evaluate ok]-->  SUCCESS  (action failures in results)
    RUNNING  --[config/fetch/other]-->   FAILURE  (first fatal error stored)

A rule that is already running is rejected with ``AlreadyRunningError``
before anything is recorded.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any

from ghostwatch.actions.dispatcher import ActionDispatcher, DispatchJob
from ghostwatch.datasources.base import DataSourceRegistry
from ghostwatch.errors import (
    AlreadyRunningError,
    ConfigurationError,
    GhostwatchError,
    RuleNotFoundError,
)
from ghostwatch.rules.evaluator import MissingFieldPolicy, filter_matches
from ghostwatch.rules.models import (
    MAX_STORED_RESULTS,
    Execution,
    ExecutionStatus,
    Rule,
    RuleStatus,
    TriggerType,
    utcnow,
)
from ghostwatch.store.rule_store import RuleStore

from .locks import InMemoryRuleLockManager, RuleLockManager

logger = logging.getLogger(__name__)


class ExecutionCoordinator:
    """Runs one rule end to end under its per-rule lock."""

    def __init__(
        self,
        store: RuleStore,
        data_sources: DataSourceRegistry,
        dispatcher: ActionDispatcher,
        locks: RuleLockManager | None = None,
        missing_field_policy: MissingFieldPolicy | str = MissingFieldPolicy.CONSERVATIVE,
        default_time_window_hours: float = 24.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.data_sources = data_sources
        self.dispatcher = dispatcher
        self.locks = locks or InMemoryRuleLockManager()
        self.missing_field_policy = MissingFieldPolicy(missing_field_policy)
        self.default_time_window_hours = default_time_window_hours
        self._clock = clock

    def execute_now(self, rule_id: str, owner_id: str | None = None) -> Execution:
        """Run a rule immediately, whatever its status.

        Raises:
            RuleNotFoundError: if the rule does not exist or is not owned by ``owner_id``
            AlreadyRunningError: if the rule is running
        """
        return self.execute(rule_id, TriggerType.MANUAL, owner_id=owner_id)

    def execute(
        self,
        rule_id: str,
        trigger: TriggerType,
        snapshot: Sequence[Mapping[str, Any]] | None = None,
        owner_id: str | None = None,
        require_active: bool = False,
    ) -> Execution | None:
        """Run one rule.

        Args:
            rule_id: Rule to run
            trigger: Path that started the run, stored on the execution
            snapshot: Records to evaluate instead of fetching
            owner_id: When set, only this owner's rule can run
            require_active: Skip (return None) unless the rule is ACTIVE
                once the lock is held

        Raises:
            RuleNotFoundError: if the rule is not visible
            AlreadyRunningError: if another execution holds the rule's lock
        """
        trigger = TriggerType(trigger)
        if self.store.get_rule(rule_id, owner_id=owner_id) is None:
            raise RuleNotFoundError(rule_id)

        try:
            with self.locks.hold(rule_id):
                # Re-read under the lock so edits made while waiting are seen
                rule = self.store.get_rule(rule_id, owner_id=owner_id)
                if rule is None:
                    raise RuleNotFoundError(rule_id)
                if require_active and rule.status != RuleStatus.ACTIVE:
                    logger.info(
                        f"Skipping rule {rule_id}: status is {rule.status.value}",
                        extra={"rule_id": rule_id, "trigger": trigger.value},
                    )
                    return None
                return self._run(rule, trigger, snapshot)
        except AlreadyRunningError:
            logger.info(
                f"Rule {rule_id} is already running, dropping {trigger.value} trigger",
                extra={"rule_id": rule_id, "trigger": trigger.value},
            )
            raise

    def _run(
        self,
        rule: Rule,
        trigger: TriggerType,
        snapshot: Sequence[Mapping[str, Any]] | None,
    ) -> Execution:
        started_at = self._clock()
        start = time.monotonic()
        execution = self.store.create_execution(
            Execution(rule_id=rule.id, trigger=trigger, started_at=started_at)
        )
        log_extra = {"rule_id": rule.id, "execution_id": execution.id, "trigger": trigger.value}
        logger.info(f"Executing rule {rule.id} ({rule.name})", extra=log_extra)

        try:
            records = self._load_records(rule, snapshot, started_at)
            matched = filter_matches(records, rule.conditions, self.missing_field_policy)
            execution.matched_count = len(matched)

            jobs = [
                DispatchJob(
                    action_index=action_index,
                    action=action,
                    record=record,
                    record_index=record_index,
                )
                for record_index, record in enumerate(matched)
                for action_index, action in enumerate(rule.actions)
            ]
            action_results = self.dispatcher.dispatch_many(jobs, rule=rule)
            execution.actions_executed = len(action_results)
            execution.results = {
                "actions": [r.model_dump(mode="json") for r in action_results[:MAX_STORED_RESULTS]],
                "matches": [dict(record) for record in matched[:MAX_STORED_RESULTS]],
            }
            execution.status = ExecutionStatus.SUCCESS
        except GhostwatchError as e:
            execution.status = ExecutionStatus.FAILURE
            execution.error = e.message
            logger.warning(f"Rule {rule.id} failed: {e.message}", extra=log_extra)
        except Exception as e:
            execution.status = ExecutionStatus.FAILURE
            execution.error = f"{type(e).__name__}: {e}"
            logger.exception(f"Unexpected error executing rule {rule.id}", extra=log_extra)

        execution.execution_time_ms = int((time.monotonic() - start) * 1000)
        execution.completed_at = self._clock()
        self.store.complete_execution(execution)
        self.store.touch_last_executed(rule.id, started_at)

        logger.info(
            f"Rule {rule.id} finished {execution.status.value}: "
            f"{execution.matched_count} matched, {execution.actions_executed} actions",
            extra={
                **log_extra,
                "matched_count": execution.matched_count,
                "actions_executed": execution.actions_executed,
            },
        )
        return execution

    def _load_records(
        self,
        rule: Rule,
        snapshot: Sequence[Mapping[str, Any]] | None,
        started_at: datetime,
    ) -> list[Mapping[str, Any]]:
        if snapshot is not None:
            return list(snapshot)

        source = rule.data_source
        if not source:
            raise ConfigurationError("Rule metadata has no dataSource", field="dataSource")
        hours = rule.time_window_hours or self.default_time_window_hours
        since = started_at - timedelta(hours=hours)
        return self.data_sources.fetch(source, since=since)
