"""
Token Validation Service - Decide whether a submitted code grants access.

Precedence: unknown, then revoked, then expired, otherwise valid.
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import utc_now
from app.models.domain import TokenState, TokenValidationResult, ValidationReason, classify_token
from app.observability.logging import get_logger
from app.observability.metrics import metrics
from app.services.token_store import TokenStore

logger = get_logger(__name__)

_STATE_REASONS = {
    TokenState.ACTIVE: ValidationReason.VALID,
    TokenState.REVOKED: ValidationReason.REVOKED,
    TokenState.EXPIRED: ValidationReason.EXPIRED,
}


def normalize_code(code: str) -> str:
    """Codes are matched trimmed and upper-cased."""
    return code.strip().upper()


class TokenValidationService:
    """Validates codes entered on the captive portal."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.store = TokenStore(session)

    async def validate_token(self, code: str, now: datetime | None = None) -> TokenValidationResult:
        """
        Classify a code at ``now`` and record its first use.

        Validations after the first keep succeeding inside the window and
        never move used_at.
        """
        now = now or utc_now()
        token = await self.store.find_by_code(normalize_code(code))

        if token is None:
            metrics.record_validation(ValidationReason.NOT_FOUND.value)
            logger.info("token_validation_failed", reason=ValidationReason.NOT_FOUND.value)
            return TokenValidationResult(valid=False, reason=ValidationReason.NOT_FOUND)

        reason = _STATE_REASONS[classify_token(token.is_revoked, token.expires_at, now)]
        if reason is not ValidationReason.VALID:
            metrics.record_validation(reason.value)
            logger.info(
                "token_validation_failed",
                token_id=str(token.id),
                reason=reason.value,
                expires_at=token.expires_at.isoformat(),
            )
            return TokenValidationResult(valid=False, reason=reason, expires_at=token.expires_at)

        first_use = False
        if token.used_at is None:
            first_use = await self.store.mark_used(token.id, now)
            await self.session.commit()

        metrics.record_validation(reason.value)
        logger.info("token_validated", token_id=str(token.id), first_use=first_use)
        return TokenValidationResult(
            valid=True,
            reason=reason,
            expires_at=token.expires_at,
            first_use=first_use,
        )
