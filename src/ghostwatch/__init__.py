"""Ghostwatch: rule automation over behavioral metrics."""

__version__ = "0.1.0"
