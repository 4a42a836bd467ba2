"""Rule management, execution and template endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ghostwatch import api_state as state
from ghostwatch.api_errors import CRUD_RESPONSES, EXECUTE_RESPONSES, OWNER_RESPONSES
from ghostwatch.api_routes.owner import require_owner
from ghostwatch.rules.models import (
    Execution,
    Rule,
    RuleCreate,
    RuleStatus,
    RuleTemplate,
    RuleUpdate,
)

router = APIRouter(tags=["rules"])


class TemplateUseRequest(BaseModel):
    """Optional overrides when creating a rule from a template."""

    name: str | None = Field(None, min_length=1)


# Templates are registered before /rules/{rule_id} so the literal path wins.


@router.get("/rules/templates", responses=OWNER_RESPONSES)
def list_templates(
    category: str | None = Query(None),
    owner_id: str = Depends(require_owner),
) -> list[RuleTemplate]:
    """List rule templates, most used first."""
    return state.get_engine().service.list_templates(category)


@router.post("/rules/templates/{template_id}/use", status_code=201, responses=CRUD_RESPONSES)
def use_template(
    template_id: str,
    payload: TemplateUseRequest | None = None,
    owner_id: str = Depends(require_owner),
) -> Rule:
    """Create a DRAFT rule from a template."""
    name = payload.name if payload else None
    return state.get_engine().service.use_template(template_id, owner_id, name=name)


@router.get("/rules", responses=OWNER_RESPONSES)
def list_rules(
    status: RuleStatus | None = Query(None),
    owner_id: str = Depends(require_owner),
) -> list[Rule]:
    """List the caller's rules with their five most recent executions."""
    return state.get_engine().service.list_rules(owner_id=owner_id, status=status)


@router.post("/rules", status_code=201, responses=CRUD_RESPONSES)
def create_rule(payload: RuleCreate, owner_id: str = Depends(require_owner)) -> Rule:
    """Create a rule."""
    return state.get_engine().service.create_rule(owner_id, payload)


@router.get("/rules/{rule_id}", responses=CRUD_RESPONSES)
def get_rule(rule_id: str, owner_id: str = Depends(require_owner)) -> Rule:
    """Get a rule with its ten most recent executions."""
    return state.get_engine().service.get_rule(rule_id, owner_id)


@router.put("/rules/{rule_id}", responses=CRUD_RESPONSES)
def update_rule(
    rule_id: str, payload: RuleUpdate, owner_id: str = Depends(require_owner)
) -> Rule:
    """Update a rule. Unset fields are left unchanged."""
    return state.get_engine().service.update_rule(rule_id, owner_id, payload)


@router.delete("/rules/{rule_id}", responses=CRUD_RESPONSES)
def delete_rule(rule_id: str, owner_id: str = Depends(require_owner)) -> dict:
    """Delete a rule and its execution history."""
    state.get_engine().service.delete_rule(rule_id, owner_id)
    return {"status": "success", "rule_id": rule_id}


@router.post("/rules/{rule_id}/activate", responses=CRUD_RESPONSES)
def activate_rule(rule_id: str, owner_id: str = Depends(require_owner)) -> Rule:
    return state.get_engine().service.activate(rule_id, owner_id)


@router.post("/rules/{rule_id}/pause", responses=CRUD_RESPONSES)
def pause_rule(rule_id: str, owner_id: str = Depends(require_owner)) -> Rule:
    return state.get_engine().service.pause(rule_id, owner_id)


@router.post("/rules/{rule_id}/execute", responses=EXECUTE_RESPONSES)
def execute_rule(rule_id: str, owner_id: str = Depends(require_owner)) -> Execution:
    """Run a rule now and return the completed execution.

    Returns 409 when the rule is already running.
    """
    return state.get_engine().execute_now(rule_id, owner_id=owner_id)


@router.get("/rules/{rule_id}/executions", responses=CRUD_RESPONSES)
def list_executions(
    rule_id: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    owner_id: str = Depends(require_owner),
) -> list[Execution]:
    """Execution history for a rule, most recent first."""
    return state.get_engine().service.list_executions(
        rule_id, owner_id, limit=limit, offset=offset
    )


@router.get("/rules/{rule_id}/schedule", responses=CRUD_RESPONSES)
def get_rule_schedule(rule_id: str, owner_id: str = Depends(require_owner)) -> dict:
    """Next time the scheduler will run the rule."""
    engine = state.get_engine()
    rule = engine.service.get_rule(rule_id, owner_id, include_executions=0)
    next_due = engine.scheduler.next_due(rule)
    return {
        "rule_id": rule.id,
        "schedule": rule.schedule,
        "status": rule.status.value,
        "last_executed_at": rule.last_executed_at.isoformat() if rule.last_executed_at else None,
        "next_due": next_due.isoformat() if next_due else None,
    }
