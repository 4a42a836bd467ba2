"""HTTP client with connection pooling.

One shared ``requests.Session`` serves webhook actions, Discord messages
and HTTP data sources. Transport-level retries are off by default: webhook
dispatch never retries, and data source retries are handled by
``ghostwatch.utils.retry`` so every attempt is logged.
"""

import logging
import threading
from dataclasses import dataclass, field

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

_sync_client: requests.Session | None = None
_client_lock = threading.Lock()


@dataclass
class HTTPClientConfig:
    """Configuration for the shared HTTP client.

    Attributes:
        pool_connections: Number of connection pools to cache
        pool_maxsize: Maximum connections per pool
        max_retries: Transport-level retries (0 disables)
        retry_backoff_factor: Backoff factor for transport retries
        retry_statuses: HTTP status codes to retry on when max_retries > 0
        headers: Default headers sent with every request
    """

    pool_connections: int = 10
    pool_maxsize: int = 20
    max_retries: int = 0
    retry_backoff_factor: float = 0.5
    retry_statuses: tuple = field(default_factory=lambda: (429, 500, 502, 503, 504))
    headers: dict[str, str] = field(default_factory=lambda: {"User-Agent": "ghostwatch"})


_default_config = HTTPClientConfig()


def configure_http_client(config: HTTPClientConfig) -> None:
    """Configure the default HTTP client settings.

    Must be called before first client access.
    """
    global _default_config
    _default_config = config


def get_sync_client(config: HTTPClientConfig | None = None) -> requests.Session:
    """Get or create the shared HTTP session.

    Args:
        config: Optional custom configuration (only used on first call)

    Returns:
        requests.Session with connection pooling configured
    """
    global _sync_client

    with _client_lock:
        if _sync_client is None:
            cfg = config or _default_config
            _sync_client = _create_sync_client(cfg)
            logger.info(
                f"Created HTTP client (pool_connections={cfg.pool_connections}, "
                f"pool_maxsize={cfg.pool_maxsize})"
            )
        return _sync_client


def _create_sync_client(config: HTTPClientConfig) -> requests.Session:
    session = requests.Session()

    retry_strategy = Retry(
        total=config.max_retries,
        backoff_factor=config.retry_backoff_factor,
        status_forcelist=list(config.retry_statuses),
        allowed_methods=["GET", "HEAD"],
        raise_on_status=False,
    )

    adapter = HTTPAdapter(
        pool_connections=config.pool_connections,
        pool_maxsize=config.pool_maxsize,
        max_retries=retry_strategy,
    )

    session.mount("http://", adapter)
    session.mount("https://", adapter)

    if config.headers:
        session.headers.update(config.headers)

    return session


def close_sync_client() -> None:
    """Close the shared HTTP client and release resources."""
    global _sync_client

    with _client_lock:
        if _sync_client is not None:
            _sync_client.close()
            _sync_client = None
            logger.info("Closed HTTP client")
