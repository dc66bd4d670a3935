"""
Expiration Notifier - Text users whose tokens have expired.

Best effort: one failed SMS is logged and the sweep moves on.
There is no record of prior notifications, so every run messages every
expired, non-revoked token still in the store.
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import utc_now
from app.exceptions import SmsDeliveryError
from app.observability.logging import get_logger
from app.observability.tracing import trace_operation
from app.services.sms_provider import SmsProvider, expiration_message
from app.services.token_store import TokenStore

logger = get_logger(__name__)


class ExpirationNotifier:
    """Sends expiration SMS for expired tokens."""

    def __init__(self, session: AsyncSession, sms_provider: SmsProvider) -> None:
        self.store = TokenStore(session)
        self.sms_provider = sms_provider

    async def notify_expired(self, now: datetime | None = None) -> int:
        """Send one message per expired token. Returns the number of attempts."""
        now = now or utc_now()
        tokens = await self.store.list_expired_unrevoked(now)

        attempted = 0
        failed = 0
        with trace_operation("expiration_sweep", candidates=len(tokens)) as span:
            for token in tokens:
                attempted += 1
                try:
                    await self.sms_provider.send(token.phone_number, expiration_message(token.code))
                except SmsDeliveryError as exc:
                    failed += 1
                    logger.warning(
                        "expiration_sms_failed",
                        token_id=str(token.id),
                        provider=exc.provider,
                        error=exc.message,
                    )
            span.set_attribute("failed", failed)

        logger.info("expiration_sweep_completed", attempted=attempted, failed=failed)
        return attempted
