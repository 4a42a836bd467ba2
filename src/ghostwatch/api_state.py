"""Shared mutable state for API modules.

The lifespan (in api.py) and route modules reference the same objects.
Route modules import this *module* (not individual names) so they see
lifespan updates:

    from ghostwatch import api_state as state
    state.engine.service.list_rules(owner_id)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ghostwatch.engine import RuleEngine

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Engine (initialized in lifespan, or injected by tests)
# ---------------------------------------------------------------------------
engine: RuleEngine | None = None

# ---------------------------------------------------------------------------
# Application health state
# ---------------------------------------------------------------------------
_app_state: dict = {
    "ready": False,
    "shutting_down": False,
    "start_time": None,
}


def get_engine() -> RuleEngine:
    """Return the engine or raise 503 when the app is not initialized."""
    from ghostwatch.api_errors import service_unavailable

    if engine is None:
        raise service_unavailable()
    return engine
