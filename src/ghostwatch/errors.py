"""Ghostwatch Error Hierarchy.

Structured exception types for the rule automation engine.
"""

from __future__ import annotations


class GhostwatchError(Exception):
    """Base error for all Ghostwatch exceptions."""

    code = "GHOSTWATCH_ERROR"

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# Configuration Errors
class ConfigurationError(GhostwatchError):
    """Rule or engine configuration is invalid. Never retried."""

    code = "CONFIGURATION"

    def __init__(self, message: str, field: str = None, details: dict = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, details)
        self.field = field


class RuleValidationError(ConfigurationError):
    """A rule definition was rejected on create, update or activation."""

    code = "VALIDATION"


# Data Source Errors
class TransientFetchError(GhostwatchError):
    """Data source fetch failed in a way that may succeed on retry."""

    code = "TRANSIENT_FETCH"

    def __init__(self, message: str, source: str = None, status_code: int = None):
        super().__init__(message, {"source": source, "status_code": status_code})
        self.source = source
        self.status_code = status_code


# Action Errors
class ActionDispatchError(GhostwatchError):
    """A single action failed to send."""

    code = "ACTION_DISPATCH"

    def __init__(self, message: str, action_type: str = None, status_code: int = None):
        super().__init__(message, {"action_type": action_type, "status_code": status_code})
        self.action_type = action_type
        self.status_code = status_code


# Execution Errors
class AlreadyRunningError(GhostwatchError):
    """Another execution of the same rule is in flight."""

    code = "ALREADY_RUNNING"

    def __init__(self, rule_id: str):
        super().__init__(f"Rule {rule_id} is already running", {"rule_id": rule_id})
        self.rule_id = rule_id


class ExecutionStateError(GhostwatchError):
    """Illegal execution lifecycle transition."""

    code = "EXECUTION_STATE"


# Lookup Errors
class RuleNotFoundError(GhostwatchError):
    """Rule does not exist or is not visible to the caller."""

    code = "NOT_FOUND"

    def __init__(self, rule_id: str):
        super().__init__(f"Rule '{rule_id}' not found", {"rule_id": rule_id})
        self.rule_id = rule_id


class TemplateNotFoundError(GhostwatchError):
    """Rule template does not exist."""

    code = "NOT_FOUND"

    def __init__(self, template_id: str):
        super().__init__(f"Template '{template_id}' not found", {"template_id": template_id})
        self.template_id = template_id
