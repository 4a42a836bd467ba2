"""Owner identification for API requests."""

from __future__ import annotations

from fastapi import Header

from ghostwatch.api_errors import unauthorized


def require_owner(x_owner_id: str | None = Header(None)) -> str:
    """Return the caller's owner id from the ``X-Owner-Id`` header."""
    if not x_owner_id or not x_owner_id.strip():
        raise unauthorized()
    return x_owner_id.strip()
