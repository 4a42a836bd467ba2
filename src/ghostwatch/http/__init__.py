"""Shared HTTP client."""

from .client import HTTPClientConfig, close_sync_client, configure_http_client, get_sync_client

__all__ = [
    "HTTPClientConfig",
    "configure_http_client",
    "get_sync_client",
    "close_sync_client",
]
