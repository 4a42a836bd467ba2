"""Persistence for rules, executions, templates and in-app notifications."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ghostwatch.errors import ExecutionStateError
from ghostwatch.rules.models import (
    Action,
    Condition,
    Execution,
    ExecutionStatus,
    InAppNotification,
    Rule,
    RuleStatus,
    RuleTemplate,
    TriggerType,
    utcnow,
)

if TYPE_CHECKING:
    from ghostwatch.state.backends import DatabaseBackend

logger = logging.getLogger(__name__)

# Catalog seeded at startup; fixed ids make seeding idempotent
BUILTIN_TEMPLATES: list[dict[str, Any]] = [
    {
        "id": "builtin-high-ghost-score",
        "name": "High Ghost Score Alert",
        "description": "Notify when a user's ghost score exceeds 80",
        "category": "ghosts",
        "conditions": [{"field": "ghostScore", "operator": "GREATER_THAN", "value": 80}],
        "actions": [
            {
                "type": "NOTIFICATION",
                "config": {"message": "{{username}} has a ghost score of {{ghostScore}}"},
            }
        ],
        "metadata": {"dataSource": "ghosts", "timeWindowHours": 24},
    },
    {
        "id": "builtin-suspicion-score",
        "name": "Suspicious Activity Alert",
        "description": "Post to Discord when a suspicion score reaches 70",
        "category": "suspicion",
        "conditions": [
            {"field": "suspicionScore", "operator": "GREATER_THAN_OR_EQUAL", "value": 70}
        ],
        "actions": [
            {
                "type": "DISCORD_MESSAGE",
                "config": {
                    "message": "{{username}} flagged with suspicion score {{suspicionScore}}"
                },
            }
        ],
        "metadata": {"dataSource": "suspicion", "timeWindowHours": 24},
    },
    {
        "id": "builtin-lurker-detection",
        "name": "Lurker Detection",
        "description": "Flag users who type often but rarely send messages",
        "category": "ghosts",
        "conditions": [
            {"field": "typingCount", "operator": "GREATER_THAN_OR_EQUAL", "value": 20},
            {"field": "messageCount", "operator": "LESS_THAN_OR_EQUAL", "value": 2},
        ],
        "actions": [
            {
                "type": "NOTIFICATION",
                "config": {
                    "message": "{{username}} typed {{typingCount}} times "
                    "but sent {{messageCount}} messages"
                },
            }
        ],
        "metadata": {"dataSource": "ghosts", "timeWindowHours": 168},
    },
]


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def _parse_datetime(value: Any) -> datetime | None:
    """Parse datetime from ISO format string (naive values are UTC)."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except (ValueError, TypeError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _load_json(value: Any, default: Any) -> Any:
    if value is None or value == "":
        return default
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Corrupted JSON column value, using default")
        return default


class RuleStore:
    """Repository for rule engine state.

    Every rule query can be scoped to an owner. Executions are appended
    RUNNING and completed exactly once.
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS rules (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            description TEXT,
            owner_id TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'DRAFT',
            trigger_type TEXT NOT NULL DEFAULT 'SCHEDULED',
            schedule TEXT,
            conditions TEXT NOT NULL,
            actions TEXT NOT NULL,
            metadata TEXT,
            last_executed_at TIMESTAMP,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_rules_owner ON rules(owner_id);
        CREATE INDEX IF NOT EXISTS idx_rules_status ON rules(status);
        CREATE INDEX IF NOT EXISTS idx_rules_trigger ON rules(status, trigger_type);

        CREATE TABLE IF NOT EXISTS rule_executions (
            id TEXT PRIMARY KEY,
            rule_id TEXT NOT NULL,
            status TEXT NOT NULL,
            trigger TEXT NOT NULL,
            matched_count INTEGER NOT NULL DEFAULT 0,
            actions_executed INTEGER NOT NULL DEFAULT 0,
            error TEXT,
            results TEXT,
            execution_time_ms INTEGER,
            started_at TIMESTAMP NOT NULL,
            completed_at TIMESTAMP,
            FOREIGN KEY (rule_id) REFERENCES rules(id) ON DELETE CASCADE
        );

        CREATE INDEX IF NOT EXISTS idx_rule_executions_rule
        ON rule_executions(rule_id, started_at DESC);

        CREATE TABLE IF NOT EXISTS rule_templates (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            description TEXT,
            category TEXT NOT NULL,
            conditions TEXT NOT NULL,
            actions TEXT NOT NULL,
            metadata TEXT,
            usage_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_rule_templates_category ON rule_templates(category);

        CREATE TABLE IF NOT EXISTS rule_notifications (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            rule_id TEXT,
            message TEXT NOT NULL,
            payload TEXT,
            created_at TIMESTAMP NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_rule_notifications_owner
        ON rule_notifications(owner_id, created_at DESC);
    """

    def __init__(self, backend: DatabaseBackend):
        """Initialize the rule store.

        Args:
            backend: Database backend for persistence
        """
        self.backend = backend
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        self.backend.executescript(self.SCHEMA)

    # Rules

    def create_rule(self, rule: Rule) -> Rule:
        with self.backend.transaction():
            self.backend.execute(
                """
                INSERT INTO rules (
                    id, name, description, owner_id, status, trigger_type, schedule,
                    conditions, actions, metadata, last_executed_at, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    rule.id,
                    rule.name,
                    rule.description,
                    rule.owner_id,
                    rule.status.value,
                    rule.trigger_type.value,
                    rule.schedule,
                    self._dump_models(rule.conditions),
                    self._dump_models(rule.actions),
                    json.dumps(rule.metadata),
                    _to_iso(rule.last_executed_at),
                    _to_iso(rule.created_at),
                    _to_iso(rule.updated_at),
                ),
            )
        logger.info(f"Created rule {rule.id} for owner {rule.owner_id}")
        return rule

    def get_rule(
        self,
        rule_id: str,
        owner_id: str | None = None,
        include_executions: int = 0,
    ) -> Rule | None:
        """Get a rule by ID, optionally scoped to an owner.

        Args:
            rule_id: Rule ID
            owner_id: When set, rules of other owners are not visible
            include_executions: Number of most recent executions to attach
        """
        if owner_id is None:
            row = self.backend.fetchone("SELECT * FROM rules WHERE id = ?", (rule_id,))
        else:
            row = self.backend.fetchone(
                "SELECT * FROM rules WHERE id = ? AND owner_id = ?", (rule_id, owner_id)
            )
        if not row:
            return None

        rule = self._row_to_rule(row)
        if include_executions:
            rule.executions = self.list_executions(rule.id, limit=include_executions)
        return rule

    def list_rules(
        self,
        owner_id: str | None = None,
        status: RuleStatus | None = None,
        trigger_type: TriggerType | None = None,
        include_executions: int = 0,
    ) -> list[Rule]:
        """List rules, newest first, with optional filters."""
        conditions = []
        params: list = []

        if owner_id is not None:
            conditions.append("owner_id = ?")
            params.append(owner_id)
        if status is not None:
            conditions.append("status = ?")
            params.append(RuleStatus(status).value)
        if trigger_type is not None:
            conditions.append("trigger_type = ?")
            params.append(TriggerType(trigger_type).value)

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        rows = self.backend.fetchall(
            f"SELECT * FROM rules WHERE {where_clause} ORDER BY created_at DESC",
            tuple(params),
        )

        rules = [self._row_to_rule(row) for row in rows]
        if include_executions:
            for rule in rules:
                rule.executions = self.list_executions(rule.id, limit=include_executions)
        return rules

    def update_rule(self, rule: Rule) -> Rule:
        """Persist every mutable field of ``rule`` and bump ``updated_at``."""
        rule.updated_at = utcnow()
        with self.backend.transaction():
            self.backend.execute(
                """
                UPDATE rules
                SET name = ?, description = ?, status = ?, trigger_type = ?, schedule = ?,
                    conditions = ?, actions = ?, metadata = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    rule.name,
                    rule.description,
                    rule.status.value,
                    rule.trigger_type.value,
                    rule.schedule,
                    self._dump_models(rule.conditions),
                    self._dump_models(rule.actions),
                    json.dumps(rule.metadata),
                    _to_iso(rule.updated_at),
                    rule.id,
                ),
            )
        return rule

    def delete_rule(self, rule_id: str, owner_id: str | None = None) -> bool:
        """Delete a rule and its executions. Returns False if nothing was deleted."""
        with self.backend.transaction():
            if owner_id is None:
                row = self.backend.fetchone("SELECT id FROM rules WHERE id = ?", (rule_id,))
            else:
                row = self.backend.fetchone(
                    "SELECT id FROM rules WHERE id = ? AND owner_id = ?", (rule_id, owner_id)
                )
            if not row:
                return False
            self.backend.execute("DELETE FROM rule_executions WHERE rule_id = ?", (rule_id,))
            self.backend.execute("DELETE FROM rules WHERE id = ?", (rule_id,))
        logger.info(f"Deleted rule {rule_id}")
        return True

    def touch_last_executed(self, rule_id: str, executed_at: datetime) -> None:
        """Set ``last_executed_at`` without touching ``updated_at``."""
        with self.backend.transaction():
            self.backend.execute(
                "UPDATE rules SET last_executed_at = ? WHERE id = ?",
                (_to_iso(executed_at), rule_id),
            )

    # Executions

    def create_execution(self, execution: Execution) -> Execution:
        """Append a RUNNING execution record."""
        if execution.status != ExecutionStatus.RUNNING:
            raise ExecutionStateError(
                f"New executions must be RUNNING, got {execution.status.value}",
                {"execution_id": execution.id},
            )
        with self.backend.transaction():
            self.backend.execute(
                """
                INSERT INTO rule_executions (
                    id, rule_id, status, trigger, matched_count, actions_executed, started_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    execution.id,
                    execution.rule_id,
                    execution.status.value,
                    execution.trigger.value,
                    execution.matched_count,
                    execution.actions_executed,
                    _to_iso(execution.started_at),
                ),
            )
        return execution

    def complete_execution(self, execution: Execution) -> Execution:
        """Move a RUNNING execution to its terminal state.

        Raises:
            ExecutionStateError: if the target status is not terminal or the
                stored execution is no longer RUNNING
        """
        if execution.status == ExecutionStatus.RUNNING:
            raise ExecutionStateError(
                "Execution must complete as SUCCESS or FAILURE", {"execution_id": execution.id}
            )
        if execution.completed_at is None:
            execution.completed_at = utcnow()

        updated = self.backend.execute_count(
            """
            UPDATE rule_executions
            SET status = ?, matched_count = ?, actions_executed = ?, error = ?,
                results = ?, execution_time_ms = ?, completed_at = ?
            WHERE id = ? AND status = ?
            """,
            (
                execution.status.value,
                execution.matched_count,
                execution.actions_executed,
                execution.error,
                json.dumps(execution.results, default=str) if execution.results is not None else None,
                execution.execution_time_ms,
                _to_iso(execution.completed_at),
                execution.id,
                ExecutionStatus.RUNNING.value,
            ),
        )
        if updated == 0:
            raise ExecutionStateError(
                f"Execution {execution.id} is not RUNNING", {"execution_id": execution.id}
            )
        return execution

    def get_execution(self, execution_id: str) -> Execution | None:
        row = self.backend.fetchone(
            "SELECT * FROM rule_executions WHERE id = ?",
            (execution_id,),
        )
        return self._row_to_execution(row) if row else None

    def list_executions(self, rule_id: str, limit: int = 20, offset: int = 0) -> list[Execution]:
        """List executions for a rule, most recent first."""
        rows = self.backend.fetchall(
            """
            SELECT * FROM rule_executions
            WHERE rule_id = ?
            ORDER BY started_at DESC
            LIMIT ? OFFSET ?
            """,
            (rule_id, limit, offset),
        )
        return [self._row_to_execution(row) for row in rows]

    def count_executions(self, rule_id: str) -> int:
        row = self.backend.fetchone(
            "SELECT COUNT(*) as count FROM rule_executions WHERE rule_id = ?",
            (rule_id,),
        )
        return row["count"] if row else 0

    # Templates

    def seed_builtin_templates(self) -> int:
        """Insert built-in templates that are not present yet.

        Returns:
            Number of templates inserted
        """
        inserted = 0
        for data in BUILTIN_TEMPLATES:
            if self.backend.fetchone("SELECT id FROM rule_templates WHERE id = ?", (data["id"],)):
                continue
            self.create_template(RuleTemplate(**data))
            inserted += 1
        if inserted:
            logger.info(f"Seeded {inserted} built-in rule templates")
        return inserted

    def create_template(self, template: RuleTemplate) -> RuleTemplate:
        with self.backend.transaction():
            self.backend.execute(
                """
                INSERT INTO rule_templates (
                    id, name, description, category, conditions, actions, metadata,
                    usage_count, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    template.id,
                    template.name,
                    template.description,
                    template.category,
                    self._dump_models(template.conditions),
                    self._dump_models(template.actions),
                    json.dumps(template.metadata),
                    template.usage_count,
                    _to_iso(template.created_at),
                    _to_iso(template.updated_at),
                ),
            )
        return template

    def get_template(self, template_id: str) -> RuleTemplate | None:
        row = self.backend.fetchone("SELECT * FROM rule_templates WHERE id = ?", (template_id,))
        return self._row_to_template(row) if row else None

    def list_templates(self, category: str | None = None) -> list[RuleTemplate]:
        """List templates, most used first."""
        if category:
            rows = self.backend.fetchall(
                "SELECT * FROM rule_templates WHERE category = ? ORDER BY usage_count DESC, name",
                (category,),
            )
        else:
            rows = self.backend.fetchall(
                "SELECT * FROM rule_templates ORDER BY usage_count DESC, name"
            )
        return [self._row_to_template(row) for row in rows]

    def increment_template_usage(self, template_id: str) -> None:
        with self.backend.transaction():
            self.backend.execute(
                "UPDATE rule_templates SET usage_count = usage_count + 1 WHERE id = ?",
                (template_id,),
            )

    # Notifications

    def add_notification(self, notification: InAppNotification) -> InAppNotification:
        with self.backend.transaction():
            self.backend.execute(
                """
                INSERT INTO rule_notifications (id, owner_id, rule_id, message, payload, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    notification.id,
                    notification.owner_id,
                    notification.rule_id,
                    notification.message,
                    json.dumps(notification.payload, default=str),
                    _to_iso(notification.created_at),
                ),
            )
        return notification

    def list_notifications(self, owner_id: str, limit: int = 50) -> list[InAppNotification]:
        rows = self.backend.fetchall(
            """
            SELECT * FROM rule_notifications
            WHERE owner_id = ?
            ORDER BY created_at DESC
            LIMIT ?
            """,
            (owner_id, limit),
        )
        return [
            InAppNotification(
                id=row["id"],
                owner_id=row["owner_id"],
                rule_id=row.get("rule_id"),
                message=row["message"],
                payload=_load_json(row.get("payload"), {}),
                created_at=_parse_datetime(row.get("created_at")) or utcnow(),
            )
            for row in rows
        ]

    # Row mapping

    @staticmethod
    def _dump_models(items: list) -> str:
        return json.dumps([item.model_dump(mode="json") for item in items])

    def _row_to_rule(self, row: dict) -> Rule:
        return Rule(
            id=row["id"],
            name=row["name"],
            description=row.get("description"),
            owner_id=row["owner_id"],
            status=RuleStatus(row["status"]),
            trigger_type=TriggerType(row["trigger_type"]),
            schedule=row.get("schedule"),
            conditions=[Condition(**c) for c in _load_json(row.get("conditions"), [])],
            actions=[Action(**a) for a in _load_json(row.get("actions"), [])],
            metadata=_load_json(row.get("metadata"), {}),
            last_executed_at=_parse_datetime(row.get("last_executed_at")),
            created_at=_parse_datetime(row.get("created_at")) or utcnow(),
            updated_at=_parse_datetime(row.get("updated_at")) or utcnow(),
        )

    def _row_to_execution(self, row: dict) -> Execution:
        return Execution(
            id=row["id"],
            rule_id=row["rule_id"],
            status=ExecutionStatus(row["status"]),
            trigger=TriggerType(row["trigger"]),
            matched_count=row.get("matched_count") or 0,
            actions_executed=row.get("actions_executed") or 0,
            error=row.get("error"),
            results=_load_json(row.get("results"), None),
            execution_time_ms=row.get("execution_time_ms"),
            started_at=_parse_datetime(row.get("started_at")) or utcnow(),
            completed_at=_parse_datetime(row.get("completed_at")),
        )

    def _row_to_template(self, row: dict) -> RuleTemplate:
        return RuleTemplate(
            id=row["id"],
            name=row["name"],
            description=row.get("description"),
            category=row["category"],
            conditions=[Condition(**c) for c in _load_json(row.get("conditions"), [])],
            actions=[Action(**a) for a in _load_json(row.get("actions"), [])],
            metadata=_load_json(row.get("metadata"), {}),
            usage_count=row.get("usage_count") or 0,
            created_at=_parse_datetime(row.get("created_at")) or utcnow(),
            updated_at=_parse_datetime(row.get("updated_at")) or utcnow(),
        )
