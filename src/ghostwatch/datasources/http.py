"""Metric service data source over HTTP."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import requests

from ghostwatch.errors import ConfigurationError, TransientFetchError
from ghostwatch.http import get_sync_client

from .base import DataSource

logger = logging.getLogger(__name__)

_TRANSIENT_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


class HTTPDataSource(DataSource):
    """GET ``{base_url}/{name}?since=...`` on the metrics service.

    The response body must be a JSON list of records, or an object with a
    ``records`` list.
    """

    def __init__(self, source_name: str, base_url: str, timeout: float = 15.0):
        self._name = source_name
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def name(self) -> str:
        return self._name

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self._name}"

    def fetch(self, since: datetime | None = None) -> list[dict[str, Any]]:
        params = {"since": since.isoformat()} if since else None
        client = get_sync_client()
        try:
            response = client.get(self.url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise TransientFetchError(f"Timeout fetching '{self._name}'", source=self._name) from e
        except requests.exceptions.ConnectionError as e:
            raise TransientFetchError(
                f"Connection error fetching '{self._name}': {e}", source=self._name
            ) from e

        if response.status_code in _TRANSIENT_STATUSES:
            raise TransientFetchError(
                f"HTTP {response.status_code} fetching '{self._name}'",
                source=self._name,
                status_code=response.status_code,
            )
        if not response.ok:
            raise ConfigurationError(
                f"HTTP {response.status_code} fetching '{self._name}'", field="dataSource"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ConfigurationError(
                f"Data source '{self._name}' returned invalid JSON", field="dataSource"
            ) from e

        if isinstance(body, dict):
            body = body.get("records")
        if not isinstance(body, list):
            raise ConfigurationError(
                f"Data source '{self._name}' did not return a list of records",
                field="dataSource",
            )
        return [record for record in body if isinstance(record, dict)]
