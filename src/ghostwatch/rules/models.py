"""Pydantic models for rules, executions and templates."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, Field

from ghostwatch.errors import ConfigurationError
from ghostwatch.rules.values import ArrayValue, StringValue, as_number, wrap

# Cap on per-execution stored action results and matched records
MAX_STORED_RESULTS = 100


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


class RuleStatus(str, Enum):
    """Lifecycle status of a rule."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"


class TriggerType(str, Enum):
    """How a rule is invoked."""

    SCHEDULED = "SCHEDULED"
    REALTIME = "REALTIME"
    MANUAL = "MANUAL"


class ConditionOperator(str, Enum):
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    GREATER_THAN_OR_EQUAL = "GREATER_THAN_OR_EQUAL"
    LESS_THAN_OR_EQUAL = "LESS_THAN_OR_EQUAL"
    CONTAINS = "CONTAINS"
    NOT_CONTAINS = "NOT_CONTAINS"
    IN = "IN"
    NOT_IN = "NOT_IN"


NUMERIC_OPERATORS = frozenset(
    {
        ConditionOperator.GREATER_THAN,
        ConditionOperator.LESS_THAN,
        ConditionOperator.GREATER_THAN_OR_EQUAL,
        ConditionOperator.LESS_THAN_OR_EQUAL,
    }
)
CONTAINS_OPERATORS = frozenset({ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS})
MEMBERSHIP_OPERATORS = frozenset({ConditionOperator.IN, ConditionOperator.NOT_IN})
NEGATED_OPERATORS = frozenset(
    {ConditionOperator.NOT_EQUALS, ConditionOperator.NOT_CONTAINS, ConditionOperator.NOT_IN}
)


class ActionType(str, Enum):
    """Kinds of side effects a matched rule can fire."""

    WEBHOOK = "WEBHOOK"
    NOTIFICATION = "NOTIFICATION"
    EMAIL = "EMAIL"
    DISCORD_MESSAGE = "DISCORD_MESSAGE"


class ExecutionStatus(str, Enum):
    """Status of a rule execution."""

    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


Scalar = Union[bool, int, float, str]
ConditionValue = Union[Scalar, list[Scalar], None]


class Condition(BaseModel):
    """A predicate over one field of a metric record."""

    field: str = Field(..., min_length=1, description="Record key, dotted for nested keys")
    operator: ConditionOperator
    value: ConditionValue = Field(None, description="Scalar, or list for IN/NOT_IN")

    def validate_shape(self) -> None:
        """Raise ConfigurationError if the value does not fit the operator."""
        wrapped = wrap(self.value)
        if self.operator in MEMBERSHIP_OPERATORS and not isinstance(wrapped, ArrayValue):
            raise ConfigurationError(
                f"{self.operator.value} on '{self.field}' requires a list value",
                field="conditions",
            )
        if self.operator in CONTAINS_OPERATORS and not isinstance(wrapped, StringValue):
            raise ConfigurationError(
                f"{self.operator.value} on '{self.field}' requires a string value",
                field="conditions",
            )
        if self.operator in NUMERIC_OPERATORS and as_number(wrapped) is None:
            raise ConfigurationError(
                f"{self.operator.value} on '{self.field}' requires a numeric value",
                field="conditions",
            )


class Action(BaseModel):
    """A side effect fired for each matched record."""

    type: ActionType
    config: dict[str, Any] = Field(default_factory=dict)

    @property
    def message(self) -> str:
        return str(self.config.get("message") or "")

    @property
    def recipients(self) -> list[str]:
        recipients = self.config.get("recipients") or []
        if isinstance(recipients, str):
            recipients = [r.strip() for r in recipients.split(",")]
        return [r for r in recipients if r]

    def validate_shape(self) -> None:
        """Raise ConfigurationError if required config keys are missing."""
        if self.type == ActionType.WEBHOOK:
            url = self.config.get("url")
            if not url or not str(url).startswith(("http://", "https://")):
                raise ConfigurationError(
                    "WEBHOOK action requires an http(s) 'url'", field="actions"
                )
        if self.type == ActionType.EMAIL and not self.recipients:
            raise ConfigurationError("EMAIL action requires 'recipients'", field="actions")


class ActionResult(BaseModel):
    """Outcome of one action invocation for one matched record."""

    action_index: int
    action_type: ActionType
    record_index: int | None = None
    success: bool
    error: str | None = None
    duration_ms: int = 0


class Execution(BaseModel):
    """An immutable record of one run of one rule (once completed)."""

    id: str = Field(default_factory=new_id)
    rule_id: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    trigger: TriggerType = TriggerType.MANUAL
    matched_count: int = 0
    actions_executed: int = 0
    error: str | None = None
    results: dict[str, Any] | None = None
    execution_time_ms: int | None = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None


class Rule(BaseModel):
    """A stored automation definition: conditions + actions + trigger policy."""

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1)
    description: str | None = None
    owner_id: str
    status: RuleStatus = RuleStatus.DRAFT
    trigger_type: TriggerType = TriggerType.SCHEDULED
    schedule: str | None = None
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    last_executed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    executions: list[Execution] = Field(default_factory=list)

    @property
    def data_source(self) -> str | None:
        source = self.metadata.get("dataSource")
        return str(source) if source else None

    @property
    def time_window_hours(self) -> float | None:
        hours = self.metadata.get("timeWindowHours")
        if isinstance(hours, bool) or not isinstance(hours, (int, float)) or hours <= 0:
            return None
        return float(hours)


class RuleCreate(BaseModel):
    """Payload for creating a rule."""

    name: str = Field(..., min_length=1)
    description: str | None = None
    status: RuleStatus = RuleStatus.DRAFT
    trigger_type: TriggerType = TriggerType.SCHEDULED
    schedule: str | None = None
    conditions: list[Condition]
    actions: list[Action]
    metadata: dict[str, Any] = Field(default_factory=dict)


class RuleUpdate(BaseModel):
    """Partial update; unset fields are left unchanged."""

    name: str | None = Field(None, min_length=1)
    description: str | None = None
    status: RuleStatus | None = None
    trigger_type: TriggerType | None = None
    schedule: str | None = None
    conditions: list[Condition] | None = None
    actions: list[Action] | None = None
    metadata: dict[str, Any] | None = None


class RuleTemplate(BaseModel):
    """Catalog entry used to pre-populate a new rule."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str | None = None
    category: str
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    usage_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class MetricUpdateEvent(BaseModel):
    """A realtime update published by the metrics service."""

    source: str = Field(..., min_length=1, description="Data source name, e.g. 'ghosts'")
    records: list[dict[str, Any]] = Field(default_factory=list)
    complete: bool = Field(
        True, description="True when records are the full snapshot and replace a fetch"
    )
    emitted_at: datetime = Field(default_factory=utcnow)


class InAppNotification(BaseModel):
    """A notification written by a NOTIFICATION action."""

    id: str = Field(default_factory=new_id)
    owner_id: str
    rule_id: str | None = None
    message: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
