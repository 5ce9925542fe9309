"""ROASYNC — Shared Route Dependencies."""

from typing import Optional

import httpx
from fastapi import Header

from roasync.core.errors import AuthError
from roasync.database import new_session
from roasync.sync.runner import SessionFactory


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Tenant identity; token issuance happens upstream of this service."""
    if not x_user_id or not x_user_id.strip():
        raise AuthError("Missing X-User-Id header")
    return x_user_id.strip()


def get_session_factory() -> SessionFactory:
    """Factory for sessions used by background work after the response."""
    return new_session


def get_http_client() -> Optional[httpx.AsyncClient]:
    """Outbound HTTP client override; None lets each client open its own."""
    return None
