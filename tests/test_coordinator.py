"""Tests for the execution coordinator."""

import sys
import threading
from datetime import timedelta

import pytest

sys.path.insert(0, "src")

from conftest import GHOST_RECORDS
from test_datasources import FlakySource

from ghostwatch.actions.dispatcher import ActionDispatcher
from ghostwatch.actions.transports import NotificationTransport
from ghostwatch.datasources import DataSource, StaticDataSource
from ghostwatch.engine.coordinator import ExecutionCoordinator
from ghostwatch.engine.scheduler import RuleScheduler
from ghostwatch.engine.service import RuleService
from ghostwatch.errors import AlreadyRunningError, RuleNotFoundError
from ghostwatch.rules.models import (
    Action,
    ActionType,
    Condition,
    ConditionOperator,
    ExecutionStatus,
    Rule,
    RuleStatus,
    TriggerType,
)


class BlockingSource(DataSource):
    """Holds fetch() open until released."""

    def __init__(self, records=None):
        self.records = list(records or [])
        self.entered = threading.Event()
        self.release = threading.Event()

    def name(self):
        return "blocking"

    def fetch(self, since=None):
        self.entered.set()
        self.release.wait(timeout=5)
        return self.records


def ghost_rule(**kwargs):
    defaults = {
        "name": "High ghosts",
        "owner_id": "owner-1",
        "status": RuleStatus.ACTIVE,
        "schedule": "*/15 * * * *",
        "conditions": [
            Condition(
                field="ghostScore",
                operator=ConditionOperator.GREATER_THAN_OR_EQUAL,
                value=80,
            )
        ],
        "actions": [
            Action(type=ActionType.WEBHOOK, config={"url": "https://x", "message": "{{username}}"})
        ],
        "metadata": {"dataSource": "ghosts"},
    }
    defaults.update(kwargs)
    return Rule(**defaults)


@pytest.fixture
def coordinator(store, registry, dispatcher):
    return ExecutionCoordinator(store, registry, dispatcher)


class TestExecute:
    """Tests for ExecutionCoordinator.execute / execute_now."""

    def test_success_records_matches_and_actions(self, store, coordinator, webhook_transport):
        rule = store.create_rule(ghost_rule())

        execution = coordinator.execute_now(rule.id)

        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.trigger == TriggerType.MANUAL
        assert execution.matched_count == 2
        assert execution.actions_executed == 2
        assert execution.completed_at is not None
        assert sorted(m.message for m in webhook_transport.sent) == ["alice", "botuser"]

        stored = store.get_execution(execution.id)
        assert stored.status == ExecutionStatus.SUCCESS
        assert [m["username"] for m in stored.results["matches"]] == ["botuser", "alice"]
        assert store.get_rule(rule.id).last_executed_at == execution.started_at

    def test_action_failure_is_still_success(self, store, registry):
        from conftest import RecordingTransport

        dispatcher = ActionDispatcher()
        dispatcher.register(ActionType.WEBHOOK, RecordingTransport(fail=True))
        coordinator = ExecutionCoordinator(store, registry, dispatcher)
        rule = store.create_rule(ghost_rule())

        try:
            execution = coordinator.execute_now(rule.id)
        finally:
            dispatcher.shutdown()

        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.actions_executed == 2
        assert all(a["success"] is False for a in execution.results["actions"])
        assert execution.results["actions"][0]["error"] == "boom"

    def test_notification_action_reaches_owner(self, store, coordinator):
        rule = store.create_rule(
            ghost_rule(
                actions=[
                    Action(
                        type=ActionType.NOTIFICATION,
                        config={"message": "{{username}} is at {{ghostScore}}"},
                    )
                ]
            )
        )
        coordinator.execute_now(rule.id)
        messages = sorted(n.message for n in store.list_notifications("owner-1"))
        assert messages == ["alice is at 80", "botuser is at 91"]

    def test_no_matches_dispatches_nothing(self, store, coordinator, webhook_transport):
        rule = store.create_rule(
            ghost_rule(
                conditions=[
                    Condition(field="ghostScore", operator=ConditionOperator.GREATER_THAN, value=99)
                ]
            )
        )
        execution = coordinator.execute_now(rule.id)
        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.matched_count == 0
        assert execution.actions_executed == 0
        assert webhook_transport.sent == []

    def test_unknown_data_source_fails(self, store, coordinator):
        rule = store.create_rule(ghost_rule(metadata={"dataSource": "nope"}))
        execution = coordinator.execute_now(rule.id)
        assert execution.status == ExecutionStatus.FAILURE
        assert "nope" in execution.error

    def test_missing_data_source_fails(self, store, coordinator):
        rule = store.create_rule(ghost_rule(metadata={}))
        execution = coordinator.execute_now(rule.id)
        assert execution.status == ExecutionStatus.FAILURE
        assert "dataSource" in execution.error

    def test_transient_fetch_retried_then_fails(self, store, registry, dispatcher):
        source = FlakySource(failures=10)
        registry.register(source)
        coordinator = ExecutionCoordinator(store, registry, dispatcher)
        rule = store.create_rule(ghost_rule(metadata={"dataSource": "flaky"}))

        execution = coordinator.execute_now(rule.id)

        assert execution.status == ExecutionStatus.FAILURE
        assert source.calls == 3
        assert store.get_execution(execution.id).error == "metrics unavailable"

    def test_snapshot_skips_fetch(self, store, coordinator):
        rule = store.create_rule(ghost_rule(metadata={"dataSource": "nope"}))
        execution = coordinator.execute(
            rule.id, TriggerType.REALTIME, snapshot=[{"username": "x", "ghostScore": 100}]
        )
        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.trigger == TriggerType.REALTIME
        assert execution.matched_count == 1

    def test_results_are_capped(self, store, registry, coordinator):
        registry.register(
            StaticDataSource("many", [{"username": f"u{i}", "ghostScore": 90} for i in range(150)])
        )
        rule = store.create_rule(ghost_rule(metadata={"dataSource": "many"}))

        execution = coordinator.execute_now(rule.id)

        assert execution.matched_count == 150
        assert execution.actions_executed == 150
        assert len(execution.results["actions"]) == 100
        assert len(execution.results["matches"]) == 100

    def test_unknown_rule(self, coordinator):
        with pytest.raises(RuleNotFoundError):
            coordinator.execute_now("missing")

    def test_other_owner_cannot_execute(self, store, coordinator):
        rule = store.create_rule(ghost_rule())
        with pytest.raises(RuleNotFoundError):
            coordinator.execute_now(rule.id, owner_id="intruder")
        assert store.count_executions(rule.id) == 0

    def test_manual_run_ignores_status(self, store, coordinator):
        rule = store.create_rule(ghost_rule(status=RuleStatus.PAUSED))
        assert coordinator.execute_now(rule.id).status == ExecutionStatus.SUCCESS

    def test_require_active_skips_inactive(self, store, coordinator):
        rule = store.create_rule(ghost_rule(status=RuleStatus.PAUSED))
        assert coordinator.execute(rule.id, TriggerType.SCHEDULED, require_active=True) is None
        assert store.count_executions(rule.id) == 0


class TestSingleFlight:
    """Tests for one-execution-at-a-time per rule."""

    def test_concurrent_run_is_rejected(self, store, registry, dispatcher):
        source = BlockingSource()
        registry.register(source)
        coordinator = ExecutionCoordinator(store, registry, dispatcher)
        rule = store.create_rule(ghost_rule(metadata={"dataSource": "blocking"}))

        results = []
        worker = threading.Thread(target=lambda: results.append(coordinator.execute_now(rule.id)))
        worker.start()
        assert source.entered.wait(timeout=5)

        with pytest.raises(AlreadyRunningError):
            coordinator.execute_now(rule.id)

        source.release.set()
        worker.join(timeout=5)

        assert len(results) == 1
        assert results[0].status == ExecutionStatus.SUCCESS
        assert store.count_executions(rule.id) == 1

    def test_lock_released_after_failure(self, store, coordinator):
        rule = store.create_rule(ghost_rule(metadata={"dataSource": "nope"}))
        coordinator.execute_now(rule.id)
        assert not coordinator.locks.is_locked(rule.id)
        assert coordinator.execute_now(rule.id).status == ExecutionStatus.FAILURE
        assert store.count_executions(rule.id) == 2


class TestPauseWhileRunning:
    """Pausing a rule mid-run lets that run finish and stops further runs."""

    def test_pause_does_not_abort_running_execution(self, store, registry, dispatcher):
        source = BlockingSource(GHOST_RECORDS)
        registry.register(source)
        coordinator = ExecutionCoordinator(store, registry, dispatcher)
        service = RuleService(store, registry)
        scheduler = RuleScheduler(store, coordinator, tick_seconds=3600)
        rule = store.create_rule(ghost_rule(metadata={"dataSource": "blocking"}))

        results = []
        worker = threading.Thread(target=lambda: results.append(coordinator.execute_now(rule.id)))
        worker.start()
        assert source.entered.wait(timeout=5)

        assert service.pause(rule.id).status == RuleStatus.PAUSED
        source.release.set()
        worker.join(timeout=5)

        assert len(results) == 1
        execution = results[0]
        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.matched_count == 2
        assert store.get_execution(execution.id).status == ExecutionStatus.SUCCESS

        # Well past the next fire time, but the rule is paused
        assert scheduler.tick(execution.started_at + timedelta(hours=1)) == []
        assert store.count_executions(rule.id) == 1


class TestResourceUsage:
    """Repeated runs keep threads and connections bounded."""

    def test_connections_stay_bounded(self, backend, store, registry):
        records = [{"username": f"u{i}", "ghostScore": 90} for i in range(4)]
        registry.register(StaticDataSource("four", records))
        dispatcher = ActionDispatcher(max_workers=4)
        dispatcher.register(ActionType.NOTIFICATION, NotificationTransport(store))
        coordinator = ExecutionCoordinator(store, registry, dispatcher)
        rule = store.create_rule(
            ghost_rule(
                metadata={"dataSource": "four"},
                actions=[Action(type=ActionType.NOTIFICATION, config={"message": "{{username}}"})],
            )
        )

        try:
            for _ in range(25):
                assert coordinator.execute_now(rule.id).status == ExecutionStatus.SUCCESS
            # The calling thread plus one per pool worker
            assert backend.connection_count <= 1 + dispatcher.max_workers
        finally:
            dispatcher.shutdown()

        assert len(store.list_notifications("owner-1", limit=500)) == 100

