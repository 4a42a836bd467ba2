"""In-memory data source."""

from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Any

from .base import DataSource


class StaticDataSource(DataSource):
    """Serves a replaceable in-memory snapshot.

    Records may carry an ``observedAt`` datetime or ISO string; when they do,
    ``since`` filters on it. Records without one are always returned.
    """

    def __init__(self, source_name: str, records: list[dict[str, Any]] | None = None):
        self._name = source_name
        self._records = list(records or [])
        self._lock = threading.Lock()

    def name(self) -> str:
        return self._name

    def replace(self, records: list[dict[str, Any]]) -> None:
        with self._lock:
            self._records = list(records)

    def fetch(self, since: datetime | None = None) -> list[dict[str, Any]]:
        with self._lock:
            records = copy.deepcopy(self._records)
        if since is None:
            return records
        return [r for r in records if _observed_after(r, since)]


def _observed_after(record: dict[str, Any], since: datetime) -> bool:
    observed = record.get("observedAt")
    if isinstance(observed, str):
        try:
            observed = datetime.fromisoformat(observed)
        except ValueError:
            return True
    if not isinstance(observed, datetime):
        return True
    if observed.tzinfo is None or since.tzinfo is None:
        observed = observed.replace(tzinfo=None)
        since = since.replace(tzinfo=None)
    return observed >= since
