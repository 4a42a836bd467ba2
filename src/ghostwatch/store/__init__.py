"""Rule engine persistence."""

from .rule_store import BUILTIN_TEMPLATES, RuleStore

__all__ = ["BUILTIN_TEMPLATES", "RuleStore"]
