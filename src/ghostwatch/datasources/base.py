"""Data source interface and registry."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from ghostwatch.errors import ConfigurationError
from ghostwatch.utils.retry import RetryConfig, retry_call

logger = logging.getLogger(__name__)


class DataSource(ABC):
    """A named provider of metric records."""

    @abstractmethod
    def fetch(self, since: datetime | None = None) -> list[dict[str, Any]]:
        """Return the current metric records.

        Args:
            since: Only records observed after this instant, when supported

        Raises:
            TransientFetchError: on failures that may succeed on retry
            ConfigurationError: when the source is misconfigured
        """

    @abstractmethod
    def name(self) -> str:
        """Get data source name."""


class DataSourceRegistry:
    """Named data sources with retried fetches.

    Usage:
        registry = DataSourceRegistry(RetryConfig(max_attempts=3))
        registry.register(StaticDataSource("ghosts", records))
        records = registry.fetch("ghosts", since=cutoff)
    """

    def __init__(self, retry_config: RetryConfig | None = None):
        self.retry_config = retry_config or RetryConfig()
        self._sources: dict[str, DataSource] = {}
        self._lock = threading.Lock()

    def register(self, source: DataSource) -> None:
        with self._lock:
            self._sources[source.name()] = source
        logger.info(f"Registered data source: {source.name()}")

    def unregister(self, name: str) -> bool:
        with self._lock:
            return self._sources.pop(name, None) is not None

    def get(self, name: str) -> DataSource:
        with self._lock:
            source = self._sources.get(name)
        if source is None:
            raise ConfigurationError(f"Unknown data source '{name}'", field="dataSource")
        return source

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._sources

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._sources)

    def fetch(self, name: str, since: datetime | None = None) -> list[dict[str, Any]]:
        """Fetch records from a named source.

        Unknown names raise ``ConfigurationError`` without retrying.
        Transient failures are retried per ``retry_config`` and then re-raised.
        """
        source = self.get(name)
        return retry_call(
            lambda: source.fetch(since),
            config=self.retry_config,
            label=f"fetch from '{name}'",
        )
