"""Rule service: CRUD, validation, activation and template use."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ghostwatch.datasources.base import DataSourceRegistry
from ghostwatch.errors import (
    ConfigurationError,
    RuleNotFoundError,
    RuleValidationError,
    TemplateNotFoundError,
)
from ghostwatch.rules.models import (
    Execution,
    Rule,
    RuleCreate,
    RuleStatus,
    RuleTemplate,
    RuleUpdate,
    TriggerType,
)
from ghostwatch.rules.schedule import validate_schedule
from ghostwatch.store.rule_store import RuleStore

if TYPE_CHECKING:
    from .listener import TriggerListener

logger = logging.getLogger(__name__)

# Executions attached to rule reads
LIST_EXECUTIONS = 5
DETAIL_EXECUTIONS = 10


class RuleService:
    """Owner-scoped rule management.

    Rules are validated whenever they become ACTIVE, so the scheduler and
    listener never see an active rule with a broken schedule or unknown
    data source.
    """

    def __init__(
        self,
        store: RuleStore,
        data_sources: DataSourceRegistry,
        listener: TriggerListener | None = None,
        timezone: str = "UTC",
    ):
        self.store = store
        self.data_sources = data_sources
        self.listener = listener
        self.timezone = timezone

    def validate_for_activation(self, rule: Rule) -> None:
        """Raise RuleValidationError unless ``rule`` can run as ACTIVE."""
        try:
            if not rule.actions:
                raise ConfigurationError("Rule needs at least one action", field="actions")
            for condition in rule.conditions:
                condition.validate_shape()
            for action in rule.actions:
                action.validate_shape()

            source = rule.data_source
            if not source:
                raise ConfigurationError("metadata.dataSource is required", field="dataSource")
            if not self.data_sources.has(source):
                raise ConfigurationError(f"Unknown data source '{source}'", field="dataSource")

            if rule.trigger_type == TriggerType.SCHEDULED:
                validate_schedule(rule.schedule, self.timezone)
        except RuleValidationError:
            raise
        except ConfigurationError as e:
            raise RuleValidationError(e.message, field=e.field) from e

    def _check(self, rule: Rule) -> None:
        if rule.status == RuleStatus.ACTIVE:
            self.validate_for_activation(rule)

    def _sync_listener(self, rule: Rule) -> None:
        if self.listener is not None:
            self.listener.sync(rule)

    # CRUD

    def create_rule(self, owner_id: str, payload: RuleCreate) -> Rule:
        rule = Rule(owner_id=owner_id, **payload.model_dump())
        self._check(rule)
        self.store.create_rule(rule)
        self._sync_listener(rule)
        return rule

    def get_rule(
        self, rule_id: str, owner_id: str | None = None, include_executions: int = DETAIL_EXECUTIONS
    ) -> Rule:
        rule = self.store.get_rule(rule_id, owner_id=owner_id, include_executions=include_executions)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    def list_rules(
        self,
        owner_id: str | None = None,
        status: RuleStatus | None = None,
        include_executions: int = LIST_EXECUTIONS,
    ) -> list[Rule]:
        return self.store.list_rules(
            owner_id=owner_id, status=status, include_executions=include_executions
        )

    def update_rule(self, rule_id: str, owner_id: str | None, payload: RuleUpdate) -> Rule:
        rule = self.get_rule(rule_id, owner_id, include_executions=0)
        changes = {
            key: value
            for key, value in payload.model_dump(exclude_unset=True).items()
            if value is not None or key in ("description", "schedule")
        }
        updated = Rule.model_validate({**rule.model_dump(), **changes})
        self._check(updated)
        self.store.update_rule(updated)
        self._sync_listener(updated)
        return updated

    def delete_rule(self, rule_id: str, owner_id: str | None = None) -> None:
        if not self.store.delete_rule(rule_id, owner_id=owner_id):
            raise RuleNotFoundError(rule_id)
        if self.listener is not None:
            self.listener.remove(rule_id)

    def activate(self, rule_id: str, owner_id: str | None = None) -> Rule:
        return self._set_status(rule_id, owner_id, RuleStatus.ACTIVE)

    def pause(self, rule_id: str, owner_id: str | None = None) -> Rule:
        """Pause a rule. A run already in flight is not aborted."""
        return self._set_status(rule_id, owner_id, RuleStatus.PAUSED)

    def _set_status(self, rule_id: str, owner_id: str | None, status: RuleStatus) -> Rule:
        rule = self.get_rule(rule_id, owner_id, include_executions=0)
        rule.status = status
        self._check(rule)
        self.store.update_rule(rule)
        self._sync_listener(rule)
        logger.info(f"Rule {rule_id} is now {status.value}", extra={"rule_id": rule_id})
        return rule

    def list_executions(
        self, rule_id: str, owner_id: str | None = None, limit: int = 20, offset: int = 0
    ) -> list[Execution]:
        self.get_rule(rule_id, owner_id, include_executions=0)
        return self.store.list_executions(rule_id, limit=limit, offset=offset)

    # Templates

    def list_templates(self, category: str | None = None) -> list[RuleTemplate]:
        return self.store.list_templates(category)

    def use_template(self, template_id: str, owner_id: str, name: str | None = None) -> Rule:
        """Create a DRAFT rule pre-populated from a template."""
        template = self.store.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)

        rule = Rule(
            name=name or template.name,
            description=template.description,
            owner_id=owner_id,
            status=RuleStatus.DRAFT,
            trigger_type=TriggerType.SCHEDULED,
            conditions=template.conditions,
            actions=template.actions,
            metadata=dict(template.metadata),
        )
        self.store.create_rule(rule)
        self.store.increment_template_usage(template_id)
        logger.info(f"Created rule {rule.id} from template {template_id}")
        return rule
