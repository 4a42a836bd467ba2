"""Rule engine: wires the components together and owns their lifecycle."""

from __future__ import annotations

import logging

from ghostwatch.actions.dispatcher import ActionDispatcher
from ghostwatch.actions.transports import (
    DiscordTransport,
    EmailTransport,
    NotificationTransport,
    WebhookTransport,
)
from ghostwatch.config.settings import Settings, get_settings
from ghostwatch.datasources.base import DataSourceRegistry
from ghostwatch.datasources.http import HTTPDataSource
from ghostwatch.http import HTTPClientConfig, close_sync_client, configure_http_client
from ghostwatch.rules.models import ActionType, Execution, MetricUpdateEvent
from ghostwatch.state.backends import DatabaseBackend, create_backend
from ghostwatch.store.rule_store import RuleStore
from ghostwatch.utils.retry import RetryConfig

from .coordinator import ExecutionCoordinator
from .listener import TriggerListener
from .locks import DatabaseLeaseManager, InMemoryRuleLockManager, RuleLockManager
from .scheduler import RuleScheduler
from .service import RuleService

logger = logging.getLogger(__name__)


class RuleEngine:
    """Top-level object: store, data sources, dispatcher, coordinator,
    scheduler, listener and service, built from settings.

    Usage:
        engine = RuleEngine()
        engine.data_sources.register(StaticDataSource("ghosts", records))
        engine.start()
        ...
        engine.stop()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        backend: DatabaseBackend | None = None,
        data_sources: DataSourceRegistry | None = None,
        dispatcher: ActionDispatcher | None = None,
        locks: RuleLockManager | None = None,
    ):
        self.settings = settings or get_settings()
        self.backend = backend or create_backend(self.settings.database_url)
        self.store = RuleStore(self.backend)
        configure_http_client(
            HTTPClientConfig(pool_maxsize=max(10, self.settings.action_workers * 2))
        )

        self.data_sources = data_sources or self._build_data_sources()
        self.dispatcher = dispatcher or self._build_dispatcher()
        self.locks = locks or self._build_locks()

        self.coordinator = ExecutionCoordinator(
            store=self.store,
            data_sources=self.data_sources,
            dispatcher=self.dispatcher,
            locks=self.locks,
            missing_field_policy=self.settings.missing_field_policy,
            default_time_window_hours=self.settings.default_time_window_hours,
        )
        self.listener = TriggerListener(self.store, self.coordinator)
        self.scheduler = RuleScheduler(
            store=self.store,
            coordinator=self.coordinator,
            tick_seconds=self.settings.scheduler_tick_seconds,
            timezone=self.settings.scheduler_timezone,
            max_workers=self.settings.max_concurrent_executions,
        )
        self.service = RuleService(
            store=self.store,
            data_sources=self.data_sources,
            listener=self.listener,
            timezone=self.settings.scheduler_timezone,
        )
        self._running = False

    def _build_data_sources(self) -> DataSourceRegistry:
        registry = DataSourceRegistry(
            RetryConfig(
                max_attempts=self.settings.fetch_max_attempts,
                base_delay=self.settings.fetch_backoff_seconds,
            )
        )
        for name, base_url in self.settings.data_source_urls.items():
            registry.register(
                HTTPDataSource(name, base_url, timeout=self.settings.fetch_timeout_seconds)
            )
        return registry

    def _build_dispatcher(self) -> ActionDispatcher:
        s = self.settings
        dispatcher = ActionDispatcher(max_workers=s.action_workers)
        dispatcher.register(ActionType.WEBHOOK, WebhookTransport(timeout=s.webhook_timeout_seconds))
        dispatcher.register(ActionType.NOTIFICATION, NotificationTransport(self.store))
        dispatcher.register(
            ActionType.EMAIL,
            EmailTransport(
                smtp_host=s.smtp_host,
                smtp_port=s.smtp_port,
                username=s.smtp_username,
                password=s.smtp_password,
                from_addr=s.smtp_from_addr,
                use_tls=s.smtp_use_tls,
                timeout=s.webhook_timeout_seconds,
            ),
        )
        dispatcher.register(
            ActionType.DISCORD_MESSAGE,
            DiscordTransport(
                default_webhook_url=s.discord_webhook_url,
                username=s.discord_username,
                timeout=s.webhook_timeout_seconds,
            ),
        )
        return dispatcher

    def _build_locks(self) -> RuleLockManager:
        if self.settings.lock_backend == "database":
            return DatabaseLeaseManager(self.backend, ttl_seconds=self.settings.lease_ttl_seconds)
        return InMemoryRuleLockManager()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Seed templates, build the realtime registry, start listener and scheduler."""
        if self._running:
            return
        self.store.seed_builtin_templates()
        self.listener.rebuild()
        self.dispatcher.start()
        self.listener.start()
        self.scheduler.start()
        self._running = True
        logger.info("Rule engine started")

    def stop(self, wait: bool = True) -> None:
        """Stop scheduler and listener; in-flight runs finish when ``wait`` is set."""
        if not self._running:
            return
        self.scheduler.shutdown(wait=wait)
        self.listener.stop()
        self.dispatcher.shutdown(wait=wait)
        close_sync_client()
        self._running = False
        logger.info("Rule engine stopped")

    def execute_now(self, rule_id: str, owner_id: str | None = None) -> Execution:
        return self.coordinator.execute_now(rule_id, owner_id=owner_id)

    def publish(self, event: MetricUpdateEvent) -> None:
        self.listener.publish(event)

    def close(self) -> None:
        self.stop()
        # Manual runs may have started the pool without start()
        self.dispatcher.shutdown()
        self.backend.close()
