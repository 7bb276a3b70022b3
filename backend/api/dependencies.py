"""Shared FastAPI dependencies."""

import secrets
from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException

from config import settings
from services.round_engine import RoundEngine, get_round_engine


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> UUID:
    """
    Caller identity set by the upstream auth gateway.

    Authentication itself happens outside this service.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid X-User-Id header")


def get_engine() -> RoundEngine:
    """Round services wired for this process."""
    return get_round_engine()


async def require_admin(
    x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key"),
) -> None:
    """Guard for administrative endpoints. Disabled when no key is configured."""
    if not settings.admin_api_key or not x_admin_key:
        raise HTTPException(status_code=403, detail="Admin access required")
    if not secrets.compare_digest(x_admin_key, settings.admin_api_key):
        raise HTTPException(status_code=403, detail="Admin access required")
