"""Tests for the rule scheduler."""

import sys
from datetime import UTC, datetime

import pytest

sys.path.insert(0, "src")

from test_coordinator import ghost_rule

from ghostwatch.engine.coordinator import ExecutionCoordinator
from ghostwatch.engine.scheduler import TICK_JOB_ID, RuleScheduler
from ghostwatch.rules.models import ExecutionStatus, RuleStatus, TriggerType

ANCHOR = datetime(2026, 1, 1, 0, 0, tzinfo=UTC)


@pytest.fixture
def scheduler(store, registry, dispatcher):
    coordinator = ExecutionCoordinator(store, registry, dispatcher)
    scheduler = RuleScheduler(store, coordinator, tick_seconds=3600)
    yield scheduler
    scheduler.shutdown(wait=True)


def scheduled_rule(store, **kwargs):
    rule = ghost_rule(schedule="*/5 * * * *", created_at=ANCHOR, updated_at=ANCHOR, **kwargs)
    return store.create_rule(rule)


class TestDueRules:
    """Tests for due computation against stored rules."""

    def test_not_due_before_first_fire_time(self, store, scheduler):
        scheduled_rule(store)
        assert scheduler.due_rules(datetime(2026, 1, 1, 0, 4, tzinfo=UTC)) == []

    def test_due_after_fire_time(self, store, scheduler):
        rule = scheduled_rule(store)
        due = scheduler.due_rules(datetime(2026, 1, 1, 0, 5, tzinfo=UTC))
        assert [r.id for r in due] == [rule.id]

    def test_only_active_scheduled_rules(self, store, scheduler):
        scheduled_rule(store, status=RuleStatus.PAUSED)
        scheduled_rule(store, status=RuleStatus.DRAFT)
        scheduled_rule(store, trigger_type=TriggerType.REALTIME)
        assert scheduler.due_rules(datetime(2026, 1, 2, tzinfo=UTC)) == []

    def test_bad_schedule_is_skipped(self, store, scheduler):
        scheduled_rule(store)
        broken = ghost_rule(schedule="nope", created_at=ANCHOR, updated_at=ANCHOR)
        store.create_rule(broken)
        due = scheduler.due_rules(datetime(2026, 1, 2, tzinfo=UTC))
        assert broken.id not in [r.id for r in due]
        assert len(due) == 1

    def test_next_due(self, store, scheduler):
        rule = scheduled_rule(store)
        assert scheduler.next_due(rule) == datetime(2026, 1, 1, 0, 5, tzinfo=UTC)
        rule.trigger_type = TriggerType.REALTIME
        assert scheduler.next_due(rule) is None


class TestTick:
    """Tests for RuleScheduler.tick."""

    def test_inline_tick_runs_due_rule_once(self, store, scheduler):
        rule = scheduled_rule(store)
        now = datetime(2026, 1, 3, tzinfo=UTC)

        futures = scheduler.tick(now)

        assert len(futures) == 1
        execution = futures[0].result()
        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.trigger == TriggerType.SCHEDULED
        assert store.count_executions(rule.id) == 1

        # Anchor moved to the run time, so missed periods do not backfill
        assert scheduler.tick(now) == []
        assert store.count_executions(rule.id) == 1

    def test_paused_rule_never_runs(self, store, scheduler):
        rule = scheduled_rule(store, status=RuleStatus.PAUSED)
        assert scheduler.tick(datetime(2026, 1, 3, tzinfo=UTC)) == []
        assert store.count_executions(rule.id) == 0

    def test_pooled_tick(self, store, scheduler):
        rule = scheduled_rule(store)
        scheduler.start()
        futures = scheduler.tick(datetime(2026, 1, 3, tzinfo=UTC))
        assert [f.result(timeout=5).rule_id for f in futures] == [rule.id]


class TestLifecycle:
    """Tests for start/shutdown."""

    def test_start_registers_tick_job(self, scheduler):
        scheduler.start()
        assert scheduler.is_running
        assert scheduler._scheduler.get_job(TICK_JOB_ID) is not None
        scheduler.start()

        scheduler.shutdown()
        assert not scheduler.is_running
