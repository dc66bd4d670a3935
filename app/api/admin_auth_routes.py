"""
Admin authentication routes.

Exchanges the admin password for a session credential, returned in the
body and set as an HttpOnly cookie.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.api.admin_dependencies import require_admin
from app.api.dependencies import get_admin_auth_service
from app.exceptions import AuthenticationError
from app.models.api import (
    ActionResponse,
    AdminLoginRequest,
    AdminLoginResponse,
    AdminSessionResponse,
)
from app.models.domain import AdminSession
from app.observability.logging import get_logger
from app.services.admin_auth import ADMIN_COOKIE_NAME, AdminAuthService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin-auth"])


@router.post("/login", response_model=AdminLoginResponse)
async def login(
    request: AdminLoginRequest,
    response: Response,
    auth_service: AdminAuthService = Depends(get_admin_auth_service),
) -> AdminLoginResponse:
    """
    Log in with the admin password.

    Returns:
        Session credential and its expiry
    """
    try:
        token, session = auth_service.login(request.password)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid password",
        ) from e

    response.set_cookie(
        key=ADMIN_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=True,  # HTTPS only
        samesite="lax",
        max_age=auth_service.jwt_expire_hours * 3600,
    )
    return AdminLoginResponse(token=token, expires_at=session.expires_at)


@router.post("/logout", response_model=ActionResponse)
async def logout(response: Response) -> ActionResponse:
    """Clear the session cookie."""
    response.delete_cookie(key=ADMIN_COOKIE_NAME)
    logger.info("admin_logout")
    return ActionResponse(success=True, message="Logged out successfully")


@router.get("/session", response_model=AdminSessionResponse)
async def get_session(admin: AdminSession = Depends(require_admin)) -> AdminSessionResponse:
    """Report whether the caller holds a valid session."""
    return AdminSessionResponse(authenticated=True, expires_at=admin.expires_at)
