"""Rule definitions, condition evaluation and schedules."""

from .evaluator import MissingFieldPolicy, evaluate_condition, filter_matches, matches
from .models import (
    MAX_STORED_RESULTS,
    Action,
    ActionResult,
    ActionType,
    Condition,
    ConditionOperator,
    Execution,
    ExecutionStatus,
    InAppNotification,
    MetricUpdateEvent,
    Rule,
    RuleCreate,
    RuleStatus,
    RuleTemplate,
    RuleUpdate,
    TriggerType,
)
from .schedule import is_due, next_fire_after, parse_schedule, validate_schedule

__all__ = [
    "MAX_STORED_RESULTS",
    "Action",
    "ActionResult",
    "ActionType",
    "Condition",
    "ConditionOperator",
    "Execution",
    "ExecutionStatus",
    "InAppNotification",
    "MetricUpdateEvent",
    "MissingFieldPolicy",
    "Rule",
    "RuleCreate",
    "RuleStatus",
    "RuleTemplate",
    "RuleUpdate",
    "TriggerType",
    "evaluate_condition",
    "filter_matches",
    "is_due",
    "matches",
    "next_fire_after",
    "parse_schedule",
    "validate_schedule",
]
