"""Metric update event intake."""

from __future__ import annotations

from fastapi import APIRouter, Query, Response

from ghostwatch import api_state as state
from ghostwatch.rules.models import MetricUpdateEvent

router = APIRouter(tags=["events"])


@router.post("/events", status_code=202)
def publish_event(
    event: MetricUpdateEvent,
    response: Response,
    wait: bool = Query(False, description="Handle the event before responding"),
) -> dict:
    """Publish a metric update event to the realtime listener."""
    engine = state.get_engine()
    if wait:
        executions = engine.listener.handle_event(event)
        response.status_code = 200
        return {
            "status": "handled",
            "source": event.source,
            "executions": [e.id for e in executions],
        }

    engine.publish(event)
    return {
        "status": "queued",
        "source": event.source,
        "rules": sorted(engine.listener.rules_for(event.source)),
    }
