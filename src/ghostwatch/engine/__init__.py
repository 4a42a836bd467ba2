"""Rule execution engine."""

from .coordinator import ExecutionCoordinator
from .engine import RuleEngine
from .listener import TriggerListener
from .locks import DatabaseLeaseManager, InMemoryRuleLockManager, RuleLockManager
from .scheduler import RuleScheduler
from .service import RuleService

__all__ = [
    "DatabaseLeaseManager",
    "ExecutionCoordinator",
    "InMemoryRuleLockManager",
    "RuleEngine",
    "RuleLockManager",
    "RuleScheduler",
    "RuleService",
    "TriggerListener",
]
