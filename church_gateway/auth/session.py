"""
Session Resolution and Admin Gate
=================================

Resolves the caller's Supabase session and enforces the admin role for
routes that change member state.

The access token is read from the Authorization header ("Bearer <token>")
or, when absent, from the session cookie. The identity provider resolves
it to a user; the is_admin() database predicate then decides the role.
Nothing is cached between requests.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

from fastapi import Depends, HTTPException, Request, status

from ..config import Settings
from ..dependencies import get_app_settings, get_supabase_gateway
from ..supabase_client import RemoteProcedureError, SupabaseGateway, UserScope

logger = logging.getLogger(__name__)


@dataclass
class AdminSession:
    """An authenticated caller that passed the admin check."""

    user: Dict[str, Any]
    db: UserScope

    @property
    def access_token(self) -> str:
        return self.db.access_token

    @property
    def user_id(self) -> str:
        return self.user["id"]


# =============================================================================
# Helper Functions
# =============================================================================

def extract_token_from_header(authorization: Optional[str]) -> Optional[str]:
    """
    Extract Bearer token from Authorization header.

    Returns:
        Token string, or None if the header is absent or not a Bearer header
    """
    if not authorization:
        return None

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None

    return parts[1]


# =============================================================================
# FastAPI Dependencies
# =============================================================================

def get_session_token(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> str:
    token = extract_token_from_header(request.headers.get("Authorization"))
    if not token:
        token = request.cookies.get(settings.SESSION_COOKIE_NAME)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def get_current_user(
    token: str = Depends(get_session_token),
    gateway: SupabaseGateway = Depends(get_supabase_gateway),
) -> Dict[str, Any]:
    """
    Resolve the session token to a user through the identity provider.

    Raises:
        HTTPException: 401 if the token does not resolve to a user
    """
    user = gateway.get_user(token)
    if not user:
        logger.warning("Request with invalid or expired session")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_user_scope(
    token: str = Depends(get_session_token),
    gateway: SupabaseGateway = Depends(get_supabase_gateway),
) -> Iterator[UserScope]:
    """
    Open one user-scoped database client for the request.

    The client is closed when the request finishes.
    """
    try:
        scope = gateway.open_user_scope(token)
    except RemoteProcedureError as e:
        logger.error(f"Could not open user database client: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database client not available",
        )

    try:
        yield scope
    finally:
        scope.close()


def require_admin(
    user: Dict[str, Any] = Depends(get_current_user),
    scope: UserScope = Depends(get_user_scope),
) -> AdminSession:
    """
    Require the session user to be an admin.

    Raises:
        HTTPException: 403 if is_admin() returns false or fails
    """
    try:
        is_admin = scope.is_admin()
    except RemoteProcedureError as e:
        logger.error(
            f"Admin role check failed: {e.message}",
            extra={"user_id": user.get("id")},
        )
        is_admin = False

    if not is_admin:
        logger.warning("Admin privileges required", extra={"user_id": user.get("id")})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )

    return AdminSession(user=user, db=scope)
