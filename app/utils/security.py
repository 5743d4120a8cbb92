"""
Caller identity helpers.

Authentication is handled upstream (gateway / identity provider); the
authenticated user id reaches this service in the X-User-ID header.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException, status

logger = logging.getLogger(__name__)


def get_current_user_id(
    user_id: Optional[str] = Header(None, alias="X-User-ID", description="Authenticated user ID"),
) -> str:
    """FastAPI dependency: the caller's user id, or 401 when absent."""
    if not user_id or not user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-ID header",
        )
    return user_id.strip()