"""
Admin authentication service using a shared admin password.

The password is exchanged for a signed HS256 session credential that every
management request presents.
"""

import hmac
from datetime import UTC, datetime, timedelta

import jwt

from app.exceptions import AuthenticationError
from app.models.domain import AdminSession
from app.observability.logging import get_logger

logger = get_logger(__name__)

ADMIN_SUBJECT = "admin"
ADMIN_COOKIE_NAME = "admin_token"


class AdminAuthService:
    """Admin authentication service."""

    def __init__(
        self,
        admin_password: str,
        jwt_secret: str,
        jwt_expire_hours: int = 24,
    ):
        self.admin_password = admin_password
        self.jwt_secret = jwt_secret
        self.jwt_expire_hours = jwt_expire_hours

    def login(self, password: str, now: datetime | None = None) -> tuple[str, AdminSession]:
        """
        Exchange the admin password for a session credential.

        Raises:
            AuthenticationError: Wrong password
        """
        if not hmac.compare_digest(password.encode("utf-8"), self.admin_password.encode("utf-8")):
            logger.warning("admin_login_failed")
            raise AuthenticationError("Invalid password")

        token, session = self.create_session_token(now)
        logger.info("admin_login_success", expires_at=session.expires_at.isoformat())
        return token, session

    def create_session_token(self, now: datetime | None = None) -> tuple[str, AdminSession]:
        """Create JWT for the admin session."""
        # JWT timestamps have one-second resolution
        issued_at = (now or datetime.now(UTC)).replace(microsecond=0)
        session = AdminSession(
            subject=ADMIN_SUBJECT,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(hours=self.jwt_expire_hours),
        )
        payload = {
            "sub": session.subject,
            "iat": session.issued_at,
            "exp": session.expires_at,
        }
        return jwt.encode(payload, self.jwt_secret, algorithm="HS256"), session

    def verify_session_token(self, token: str) -> AdminSession | None:
        """Verify JWT and return the session, or None when invalid or expired."""
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            logger.warning("jwt_token_expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning("jwt_token_invalid", error=str(e))
            return None

        if payload["sub"] != ADMIN_SUBJECT:
            logger.warning("jwt_token_wrong_subject", subject=str(payload["sub"]))
            return None

        return AdminSession(
            subject=payload["sub"],
            issued_at=datetime.fromtimestamp(payload["iat"], UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], UTC),
        )
