"""
Admin authentication dependencies for protecting admin routes.

Accepts the session credential from an ``Authorization: Bearer`` header or
the ``admin_token`` cookie.
"""

from fastapi import Depends, Header, HTTPException, Request, status

from app.api.dependencies import get_admin_auth_service
from app.models.domain import AdminSession
from app.observability.logging import get_logger
from app.services.admin_auth import ADMIN_COOKIE_NAME, AdminAuthService

logger = get_logger(__name__)


async def require_admin(
    request: Request,
    authorization: str | None = Header(None),
    auth_service: AdminAuthService = Depends(get_admin_auth_service),
) -> AdminSession:
    """
    Get the current admin session.

    Checks Authorization header first, then cookie.

    Raises:
        HTTPException(401): If no credential is provided or it is invalid or expired
    """
    token = None
    if authorization and authorization.startswith("Bearer "):
        token = authorization.removeprefix("Bearer ").strip()

    if not token:
        token = request.cookies.get(ADMIN_COOKIE_NAME)

    if not token:
        logger.warning("admin_auth_no_token", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    session = auth_service.verify_session_token(token)
    if session is None:
        logger.warning("admin_auth_invalid_token", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.debug("admin_auth_success", expires_at=session.expires_at.isoformat())
    return session
