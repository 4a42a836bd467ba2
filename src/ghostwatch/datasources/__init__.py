"""Metric data sources."""

from .base import DataSource, DataSourceRegistry
from .http import HTTPDataSource
from .static import StaticDataSource

__all__ = [
    "DataSource",
    "DataSourceRegistry",
    "HTTPDataSource",
    "StaticDataSource",
]
