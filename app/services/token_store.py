"""
Token Store - Persistence for issued access tokens.

NO DICTIONARIES - Returns ORM rows and typed domain models.

Validity is never stored: queries derive it from is_revoked and expires_at.
Writes flush but do not commit; the calling service owns the transaction.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Token
from app.exceptions import DataIntegrityError, TokenCodeCollisionError, TokenNotFoundError
from app.models.domain import TokenStats
from app.observability.logging import get_logger

logger = get_logger(__name__)

EXPIRING_SOON_WINDOW = timedelta(hours=2)


def _start_of_day(now: datetime) -> datetime:
    """Midnight UTC of the day containing ``now``."""
    day = now.astimezone(UTC).date()
    return datetime(day.year, day.month, day.day, tzinfo=UTC)


class TokenStore:
    """Data access for the tokens table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, token: Token) -> Token:
        """
        Insert a new token inside a savepoint.

        A failed insert rolls back only the savepoint, so callers holding
        row locks (payment confirmation) keep their transaction.

        Raises:
            TokenCodeCollisionError: The code is already taken
            DataIntegrityError: Any other constraint violation
        """
        try:
            async with self.session.begin_nested():
                self.session.add(token)
                await self.session.flush()
        except IntegrityError as exc:
            if "uq_tokens_code" in str(exc.orig):
                raise TokenCodeCollisionError(token.code) from exc
            logger.error("token_insert_integrity_error", error=str(exc.orig))
            raise DataIntegrityError(str(exc.orig)) from exc
        return token

    async def get(self, token_id: UUID) -> Token:
        """
        Get a token by id.

        Raises:
            TokenNotFoundError: Token doesn't exist
        """
        token = await self.session.get(Token, token_id)
        if token is None:
            raise TokenNotFoundError(token_id)
        return token

    async def find_by_code(self, code: str) -> Token | None:
        """Exact-match lookup by (already normalized) code."""
        result = await self.session.execute(select(Token).where(Token.code == code))
        return result.scalar_one_or_none()

    async def list_all(self) -> list[Token]:
        """All tokens, newest first."""
        result = await self.session.execute(select(Token).order_by(Token.created_at.desc()))
        return list(result.scalars().all())

    async def list_active(self, now: datetime) -> list[Token]:
        """Non-revoked, unexpired tokens ordered by creation."""
        stmt = (
            select(Token)
            .where(Token.is_revoked.is_(False), Token.expires_at > now)
            .order_by(Token.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_expired_unrevoked(self, now: datetime) -> list[Token]:
        """Tokens whose window has closed and were never revoked."""
        stmt = (
            select(Token)
            .where(Token.is_revoked.is_(False), Token.expires_at <= now)
            .order_by(Token.expires_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_used(self, token_id: UUID, used_at: datetime) -> bool:
        """
        Record first use.

        Conditional on used_at still being NULL so concurrent first
        validations write it at most once. Returns True if this call set it.
        """
        stmt = (
            update(Token)
            .where(Token.id == token_id, Token.used_at.is_(None))
            .values(used_at=used_at)
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)

    async def revoke(self, token_id: UUID, revoked_at: datetime) -> Token:
        """
        Revoke a token. Revoking twice keeps the first revoked_at.

        Raises:
            TokenNotFoundError: Token doesn't exist
        """
        token = await self.get(token_id)
        if not token.is_revoked:
            token.is_revoked = True
            token.revoked_at = revoked_at
            await self.session.flush()
        return token

    async def record_sms_result(self, token: Token, delivered: bool, error: str | None) -> None:
        """Store the outcome of the token SMS."""
        token.sms_delivered = delivered
        token.sms_error = error
        await self.session.flush()

    async def stats(self, now: datetime) -> TokenStats:
        """Dashboard counters at ``now``."""
        active_filter = (Token.is_revoked.is_(False), Token.expires_at > now)

        active = await self.session.scalar(
            select(func.count()).select_from(Token).where(*active_filter)
        )
        expiring_soon = await self.session.scalar(
            select(func.count())
            .select_from(Token)
            .where(*active_filter, Token.expires_at <= now + EXPIRING_SOON_WINDOW)
        )
        generated_today = await self.session.scalar(
            select(func.count()).select_from(Token).where(Token.created_at >= _start_of_day(now))
        )

        return TokenStats(
            active_tokens=active or 0,
            expiring_soon=expiring_soon or 0,
            generated_today=generated_today or 0,
        )

    async def count_expired_before(self, cutoff: datetime) -> int:
        """How many tokens a purge with this cutoff would delete."""
        count = await self.session.scalar(
            select(func.count()).select_from(Token).where(Token.expires_at < cutoff)
        )
        return count or 0

    async def purge_expired(self, cutoff: datetime) -> int:
        """Delete tokens that expired before ``cutoff``. Returns rows deleted."""
        result = await self.session.execute(delete(Token).where(Token.expires_at < cutoff))
        return result.rowcount or 0
