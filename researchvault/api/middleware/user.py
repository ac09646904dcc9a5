"""User identity for ResearchVault API requests.

Authentication happens upstream; the gateway forwards the resolved user in the
X-User-ID header.
"""

from __future__ import annotations

import re

from fastapi import Header, HTTPException, status

USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.@:-]{1,128}$")


def validate_user_id(user_id: str | None) -> str:
    """
    Raises:
        HTTPException: 401 if missing, 400 if malformed
    """
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-ID header",
        )
    if not USER_ID_PATTERN.match(user_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid user id",
        )
    return user_id


def get_user_id(x_user_id: str | None = Header(None)) -> str:
    """
    Dependency for endpoints scoped to one user.

    Usage:
        @router.get("/api/candidates")
        async def list_candidates(user_id: str = Depends(get_user_id)):
            ...
    """
    return validate_user_id(x_user_id)
