"""Configuration module for the Ghostwatch rule engine."""

from .logging import JSONFormatter, TextFormatter, configure_logging
from .settings import Settings, get_settings, reset_settings

__all__ = [
    "Settings",
    "get_settings",
    "reset_settings",
    "configure_logging",
    "JSONFormatter",
    "TextFormatter",
]
