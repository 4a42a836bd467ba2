"""In-app notification endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ghostwatch import api_state as state
from ghostwatch.api_errors import OWNER_RESPONSES
from ghostwatch.api_routes.owner import require_owner
from ghostwatch.rules.models import InAppNotification

router = APIRouter(tags=["notifications"])


@router.get("/notifications", responses=OWNER_RESPONSES)
def list_notifications(
    limit: int = Query(50, ge=1, le=500),
    owner_id: str = Depends(require_owner),
) -> list[InAppNotification]:
    """Notifications written by the caller's NOTIFICATION actions, newest first."""
    return state.get_engine().store.list_notifications(owner_id, limit=limit)
