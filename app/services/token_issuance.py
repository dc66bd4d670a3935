"""
Token Issuance Service - Generate, persist and deliver access tokens.

Payment is fail-closed (callers only issue after confirmation); SMS is
fail-open (a delivery failure is recorded on the token, never raised).
"""

import secrets
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.models import Token, utc_now
from app.exceptions import SmsDeliveryError, TokenCodeCollisionError, TokenIssuanceError
from app.models.domain import (
    TOKEN_ALPHABET,
    TOKEN_CODE_LENGTH,
    PaymentMethod,
    TokenPlan,
    describe_duration,
)
from app.observability.logging import get_logger, mask_phone
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation
from app.services.sms_provider import SmsProvider, token_message
from app.services.token_store import TokenStore

logger = get_logger(__name__)


def generate_token_code(length: int = TOKEN_CODE_LENGTH) -> str:
    """Random code; each character drawn uniformly from TOKEN_ALPHABET."""
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


class TokenIssuanceService:
    """
    Issues tokens against a plan.

    Usage:
        service = TokenIssuanceService(db, sms_provider)
        token = await service.issue_token(
            phone_number="+263771234567",
            plan=TokenPlan.from_network(network),
            payment_method=PaymentMethod.MANUAL,
            payment_reference=MANUAL_PAYMENT_REFERENCE,
        )
    """

    def __init__(
        self,
        session: AsyncSession,
        sms_provider: SmsProvider,
        max_attempts: int | None = None,
        code_generator: Callable[[], str] = generate_token_code,
    ) -> None:
        self.session = session
        self.sms_provider = sms_provider
        self.store = TokenStore(session)
        self.max_attempts = max_attempts or settings.token_code_max_attempts
        self.code_generator = code_generator

    async def create_token(
        self,
        phone_number: str,
        plan: TokenPlan,
        payment_method: PaymentMethod,
        payment_reference: str,
        amount: Decimal | None = None,
        now: datetime | None = None,
    ) -> Token:
        """
        Persist a new token without committing or sending SMS.

        Retries with a fresh code when the generated one is already taken.

        Raises:
            TokenIssuanceError: Every attempt collided
        """
        created_at = now or utc_now()
        expires_at = created_at + timedelta(hours=float(plan.duration_hours))

        with trace_operation(
            "token_issuance",
            payment_method=payment_method.value,
            network_id=plan.network_id,
        ) as span:
            for attempt in range(1, self.max_attempts + 1):
                token = Token(
                    code=self.code_generator(),
                    phone_number=phone_number,
                    amount=plan.price if amount is None else amount,
                    payment_method=payment_method.value,
                    payment_reference=payment_reference,
                    network_id=plan.network_id,
                    network_name=plan.network_name,
                    duration_hours=plan.duration_hours,
                    created_at=created_at,
                    expires_at=expires_at,
                    used_at=None,
                    is_revoked=False,
                    sms_delivered=False,
                    sms_error=None,
                )
                try:
                    await self.store.add(token)
                except TokenCodeCollisionError:
                    metrics.token_code_collisions_total.inc()
                    logger.warning("token_code_collision", attempt=attempt)
                    continue

                span.set_attribute("token_id", str(token.id))
                span.set_attribute("attempts", attempt)
                metrics.record_token_issued(payment_method.value)
                logger.info(
                    "token_issued",
                    token_id=str(token.id),
                    phone_number=mask_phone(phone_number),
                    payment_method=payment_method.value,
                    payment_reference=payment_reference,
                    network_id=str(plan.network_id) if plan.network_id else None,
                    expires_at=expires_at.isoformat(),
                )
                return token

        metrics.record_error("TokenIssuanceError", "token_issuance")
        logger.error("token_issuance_exhausted", attempts=self.max_attempts)
        raise TokenIssuanceError(f"no unique code after {self.max_attempts} attempts")

    async def deliver_token_sms(self, token: Token) -> bool:
        """
        Send the token by SMS and record the outcome. Never raises on
        delivery failure. Commits the recorded outcome.
        """
        body = token_message(token.code, describe_duration(token.duration_hours))
        try:
            await self.sms_provider.send(token.phone_number, body)
        except SmsDeliveryError as exc:
            await self.store.record_sms_result(token, delivered=False, error=exc.message)
            await self.session.commit()
            logger.warning(
                "token_sms_not_delivered",
                token_id=str(token.id),
                provider=exc.provider,
                error=exc.message,
            )
            return False

        await self.store.record_sms_result(token, delivered=True, error=None)
        await self.session.commit()
        return True

    async def issue_token(
        self,
        phone_number: str,
        plan: TokenPlan,
        payment_method: PaymentMethod,
        payment_reference: str,
        amount: Decimal | None = None,
        now: datetime | None = None,
    ) -> Token:
        """Create and commit a token, then deliver it by SMS."""
        token = await self.create_token(
            phone_number=phone_number,
            plan=plan,
            payment_method=payment_method,
            payment_reference=payment_reference,
            amount=amount,
            now=now,
        )
        await self.session.commit()
        await self.deliver_token_sms(token)
        return token
