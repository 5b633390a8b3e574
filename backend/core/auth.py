"""
Caller identity for the HTTP adapter.

Identity is verified upstream by the gateway, which forwards the trusted
user id in the X-User-Id header. This module only reads it.
"""
from typing import Optional
import logging

from fastapi import Header, HTTPException

logger = logging.getLogger(__name__)

MAX_USER_ID_CHARS = 100


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, description="Trusted user id set by the identity gateway"),
) -> str:
    """
    Extract the current user id.

    Raises:
        HTTPException 401: header missing or blank
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    if len(user_id) > MAX_USER_ID_CHARS:
        logger.warning("[auth] oversized user id rejected", extra={"length": len(user_id)})
        raise HTTPException(status_code=401, detail="Invalid X-User-Id header")
    return user_id
