"""Action dispatcher.

Renders an action against a matched record and hands it to the transport
registered for its type. ``dispatch`` never raises: every failure is
captured in the returned ``ActionResult``.

Usage:
    dispatcher = ActionDispatcher()
    dispatcher.register(ActionType.WEBHOOK, WebhookTransport(timeout=10))

    result = dispatcher.dispatch(action, record, rule=rule)
    results = dispatcher.dispatch_many([DispatchJob(0, action, record, 0)], rule=rule)
    dispatcher.shutdown()

Concurrent jobs share one worker pool, created on first use and kept until
``shutdown``.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from ghostwatch.errors import ActionDispatchError
from ghostwatch.rules.models import Action, ActionResult, ActionType, Rule

from .base import ActionMessage, Transport
from .templating import render_template

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchJob:
    """One action to fire for one matched record."""

    action_index: int
    action: Action
    record: Mapping[str, Any]
    record_index: int | None = None


class ActionDispatcher:
    """Routes actions to transports and isolates their failures."""

    def __init__(self, max_workers: int = 4):
        self._transports: dict[ActionType, Transport] = {}
        self.max_workers = max_workers
        self._pool: ThreadPoolExecutor | None = None
        self._pool_lock = threading.Lock()

    def start(self) -> None:
        """Create the worker pool if it is not running."""
        self._get_pool()

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker pool; the next ``dispatch_many`` creates a new one."""
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=wait)

    @property
    def is_running(self) -> bool:
        return self._pool is not None

    def _get_pool(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="ghostwatch-action"
                )
            return self._pool

    def register(self, action_type: ActionType, transport: Transport) -> None:
        """Register the transport used for ``action_type``."""
        self._transports[ActionType(action_type)] = transport
        logger.info(f"Registered {transport.name()} transport for {ActionType(action_type).value}")

    def transport_for(self, action_type: ActionType) -> Transport | None:
        return self._transports.get(action_type)

    def build_message(
        self, action: Action, record: Mapping[str, Any], rule: Rule | None = None
    ) -> ActionMessage:
        return ActionMessage(
            action_type=action.type.value,
            message=render_template(action.message, record),
            record=dict(record),
            config=action.config,
            rule_id=rule.id if rule else None,
            rule_name=rule.name if rule else None,
            owner_id=rule.owner_id if rule else None,
        )

    def dispatch(
        self,
        action: Action,
        record: Mapping[str, Any],
        rule: Rule | None = None,
        action_index: int = 0,
        record_index: int | None = None,
    ) -> ActionResult:
        """Fire one action for one record."""
        start = time.monotonic()
        error: str | None = None

        transport = self.transport_for(action.type)
        if transport is None:
            error = f"No transport registered for {action.type.value}"
        else:
            try:
                transport.send(self.build_message(action, record, rule))
            except ActionDispatchError as e:
                error = e.message
            except Exception as e:
                error = f"{type(e).__name__}: {e}"

        duration_ms = int((time.monotonic() - start) * 1000)
        if error:
            logger.warning(
                f"Action {action.type.value} failed for rule {rule.id if rule else '-'}: {error}"
            )

        return ActionResult(
            action_index=action_index,
            action_type=action.type,
            record_index=record_index,
            success=error is None,
            error=error,
            duration_ms=duration_ms,
        )

    def dispatch_many(self, jobs: Sequence[DispatchJob], rule: Rule | None = None) -> list[ActionResult]:
        """Fire jobs on a bounded pool and return results in job order."""
        if not jobs:
            return []
        if len(jobs) == 1 or self.max_workers <= 1:
            return [self._run(job, rule) for job in jobs]

        return list(self._get_pool().map(lambda job: self._run(job, rule), jobs))

    def _run(self, job: DispatchJob, rule: Rule | None) -> ActionResult:
        return self.dispatch(
            job.action,
            job.record,
            rule=rule,
            action_index=job.action_index,
            record_index=job.record_index,
        )
