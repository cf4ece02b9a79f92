"""Request identity for the Rapport API.

User authentication happens upstream: the gateway verifies the session and
forwards the user id in X-User-Id. Admin endpoints additionally require an
API key in the Authorization header.
"""

from __future__ import annotations

import os
import secrets

from fastapi import Header, HTTPException, status

from rapport.observability.logging import get_logger

logger = get_logger(__name__)

USER_ID_MAX_LENGTH = 128


def get_current_user_id(x_user_id: str | None = Header(None)) -> str:
    """Dependency returning the caller's user id; 401 when the gateway sent none."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity",
        )
    if len(user_id) > USER_ID_MAX_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity",
        )
    return user_id


class AdminKeyAuth:
    """
    API key check for admin endpoints (cache stats and clear).

    The key is read from RAPPORT_ADMIN_API_KEY. When it is unset the admin
    endpoints are open, which is only acceptable in development.
    """

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key if api_key is not None else os.getenv("RAPPORT_ADMIN_API_KEY")
        if not self.api_key:
            logger.warning("RAPPORT_ADMIN_API_KEY not set - admin endpoints are unprotected!")

    def verify(self, authorization: str | None) -> bool:
        """
        Verify "Bearer {api_key}" from the Authorization header.

        Raises:
            HTTPException: 401 when missing or malformed, 403 when wrong
        """
        if not self.api_key:
            return True

        if not authorization:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing authorization header",
                headers={"WWW-Authenticate": "Bearer"},
            )

        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authorization header format. Expected: Bearer {api_key}",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if not secrets.compare_digest(token.strip(), self.api_key):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid API key")

        return True


_admin_auth: AdminKeyAuth | None = None


def require_admin(authorization: str | None = Header(None)) -> bool:
    """Dependency for admin-only endpoints."""
    global _admin_auth
    if _admin_auth is None:
        _admin_auth = AdminKeyAuth()
    return _admin_auth.verify(authorization)
