"""
Purchase Service - Paid token issuance.

Records a pending payment, hands it to the payment provider and issues the
token exactly once when the provider confirms payment. A payment row links
to the token it produced, so repeated webhook deliveries are harmless.
"""

import secrets
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, settings
from app.db.models import Payment, Token, utc_now
from app.exceptions import (
    PaymentProviderError,
    PaymentProviderNotConfiguredError,
    PurchaseNotFoundError,
    PurchaseValidationError,
)
from app.models.domain import (
    FREE_PAYMENT_REFERENCE,
    PaymentMethod,
    PaymentStatus,
    PurchaseOutcome,
    TokenPlan,
)
from app.observability.logging import get_logger, mask_phone
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation
from app.services.payment_provider import PaymentProvider, PaymentRequest, WebhookEvent
from app.services.paynow_provider import PaynowProvider
from app.services.sms_provider import SmsProvider
from app.services.stripe_provider import StripeProvider
from app.services.token_issuance import TokenIssuanceService

logger = get_logger(__name__)

_CENT = Decimal("0.01")


def new_payment_reference() -> str:
    """Our own purchase reference, e.g. WIFI-3F9A0C12B7D4."""
    return f"WIFI-{secrets.token_hex(6).upper()}"


@dataclass
class PaymentProviders:
    """Payment providers configured at startup, keyed by payment method."""

    stripe: StripeProvider | None = None
    paynow: PaynowProvider | None = None

    def for_method(self, method: PaymentMethod) -> PaymentProvider:
        """
        Provider that handles ``method``.

        Raises:
            PaymentProviderNotConfiguredError: No credentials for that method
        """
        provider: PaymentProvider | None = None
        if method == PaymentMethod.STRIPE:
            provider = self.stripe
        elif method in (PaymentMethod.PAYNOW, PaymentMethod.MOBILE_MONEY):
            provider = self.paynow
        if provider is None:
            raise PaymentProviderNotConfiguredError(method.value)
        return provider

    @property
    def configured_methods(self) -> list[str]:
        methods = []
        if self.stripe is not None:
            methods.append(PaymentMethod.STRIPE.value)
        if self.paynow is not None:
            methods += [PaymentMethod.PAYNOW.value, PaymentMethod.MOBILE_MONEY.value]
        return methods

    async def close(self) -> None:
        for provider in (self.stripe, self.paynow):
            if provider is not None:
                await provider.close()


def build_payment_providers(config: Settings) -> PaymentProviders:
    """Construct every provider that has credentials."""
    providers = PaymentProviders()
    if config.stripe_configured:
        providers.stripe = StripeProvider(
            api_key=config.stripe_api_key,
            webhook_secret=config.stripe_webhook_secret,
            publishable_key=config.stripe_publishable_key,
        )
    if config.paynow_configured:
        providers.paynow = PaynowProvider(
            integration_id=config.paynow_integration_id,
            integration_key=config.paynow_integration_key,
            return_url=config.paynow_return_url,
            result_url=config.paynow_result_url,
            auth_email=config.paynow_auth_email,
            timeout=config.paynow_timeout_seconds,
        )
    logger.info("payment_providers_configured", methods=providers.configured_methods)
    return providers


class PurchaseService:
    """
    Drives a purchase from request to issued token.

    Usage:
        service = PurchaseService(db, providers, sms_provider)
        outcome = await service.start_purchase(phone, plan, PaymentMethod.STRIPE)
        ...
        token = await service.handle_webhook_event(event)
    """

    def __init__(
        self,
        session: AsyncSession,
        providers: PaymentProviders,
        sms_provider: SmsProvider,
    ) -> None:
        self.session = session
        self.providers = providers
        self.issuance = TokenIssuanceService(session, sms_provider)

    async def start_purchase(
        self,
        phone_number: str,
        plan: TokenPlan,
        method: PaymentMethod,
        amount: Decimal | None = None,
        email: str | None = None,
        mobile_money_operator: str | None = None,
    ) -> PurchaseOutcome:
        """
        Start a purchase.

        Zero-priced plans issue the token immediately. Paid plans create a
        pending payment; the token is issued on confirmation.

        Raises:
            PurchaseValidationError: Client amount differs from the plan price
            PaymentProviderNotConfiguredError: No provider for ``method``
            PaymentProviderError: Provider refused or failed
        """
        if amount is not None and amount.quantize(_CENT) != plan.price.quantize(_CENT):
            logger.warning(
                "purchase_amount_mismatch",
                requested=str(amount),
                expected=str(plan.price),
                network_id=str(plan.network_id) if plan.network_id else None,
            )
            raise PurchaseValidationError("Amount does not match the selected plan price")

        if plan.price == 0:
            token = await self.issuance.issue_token(
                phone_number=phone_number,
                plan=plan,
                payment_method=PaymentMethod.FREE,
                payment_reference=FREE_PAYMENT_REFERENCE,
            )
            return PurchaseOutcome(
                reference=FREE_PAYMENT_REFERENCE,
                status=PaymentStatus.PAID,
                token=token,
            )

        provider = self.providers.for_method(method)
        reference = new_payment_reference()

        with trace_operation("purchase_start", provider=provider.name, method=method.value):
            payment = Payment(
                reference=reference,
                provider=method.value,
                phone_number=phone_number,
                network_id=plan.network_id,
                network_name=plan.network_name,
                duration_hours=plan.duration_hours,
                amount=plan.price,
                currency=settings.payment_currency,
                status=PaymentStatus.PENDING.value,
            )
            self.session.add(payment)
            await self.session.flush()

            request = PaymentRequest(
                reference=reference,
                method=method,
                amount=plan.price,
                currency=settings.payment_currency,
                description=f"Wi-Fi access - {plan.network_name or 'default plan'}",
                phone_number=phone_number,
                network_id=plan.network_id,
                email=email,
                mobile_money_operator=mobile_money_operator,
            )
            try:
                result = await provider.create_payment(request)
            except PaymentProviderError:
                payment.status = PaymentStatus.FAILED.value
                await self.session.commit()
                metrics.record_error("PaymentProviderError", "purchase_start")
                raise

            payment.provider_payment_id = result.payment_id
            payment.poll_url = result.poll_url
            await self.session.commit()

        logger.info(
            "purchase_started",
            reference=reference,
            provider=provider.name,
            method=method.value,
            amount=str(plan.price),
            phone_number=mask_phone(phone_number),
        )

        return PurchaseOutcome(
            reference=reference,
            status=PaymentStatus.PENDING,
            client_secret=result.client_secret,
            publishable_key=(
                self.providers.stripe.publishable_key
                if method == PaymentMethod.STRIPE and self.providers.stripe
                else None
            ),
            payment_url=result.payment_url,
            instructions=result.instructions,
        )

    async def handle_webhook_event(self, event: WebhookEvent) -> Token | None:
        """
        Apply a verified provider event.

        Paid events issue the token once and link it to the payment; a
        repeat returns the already issued token. Failed events mark the
        payment failed. Pending events and unknown payments are ignored.
        """
        payment = await self._lock_payment(event)
        if payment is None:
            logger.warning(
                "webhook_payment_not_found",
                provider=event.provider,
                event_id=event.event_id,
                payment_id=event.payment_id,
                reference=event.reference,
            )
            return None

        if event.status == PaymentStatus.PENDING:
            return None

        if event.status == PaymentStatus.FAILED:
            if payment.status == PaymentStatus.PENDING.value:
                payment.status = PaymentStatus.FAILED.value
                await self.session.commit()
                metrics.record_payment_event(event.provider, "failed")
                logger.info("purchase_failed", reference=payment.reference, event_id=event.event_id)
            return None

        # The linked token may have been purged since; the status still holds
        if payment.status == PaymentStatus.PAID.value or payment.token_id is not None:
            logger.info(
                "webhook_duplicate_ignored",
                reference=payment.reference,
                event_id=event.event_id,
                token_id=str(payment.token_id) if payment.token_id else None,
            )
            if payment.token_id is None:
                return None
            return await self.session.get(Token, payment.token_id)

        if event.amount is not None and event.amount.quantize(_CENT) != payment.amount.quantize(
            _CENT
        ):
            payment.status = PaymentStatus.FAILED.value
            await self.session.commit()
            metrics.record_error("AmountMismatch", "purchase_confirm")
            logger.error(
                "webhook_amount_mismatch",
                reference=payment.reference,
                expected=str(payment.amount),
                received=str(event.amount),
            )
            return None

        plan = TokenPlan(
            price=payment.amount,
            duration_hours=payment.duration_hours,
            network_id=payment.network_id,
            network_name=payment.network_name,
        )
        if event.payment_id and not payment.provider_payment_id:
            payment.provider_payment_id = event.payment_id

        token = await self.issuance.create_token(
            phone_number=payment.phone_number,
            plan=plan,
            payment_method=PaymentMethod(payment.provider),
            payment_reference=payment.provider_payment_id or payment.reference,
        )
        payment.token_id = token.id
        payment.status = PaymentStatus.PAID.value
        payment.updated_at = utc_now()
        await self.session.commit()

        metrics.record_payment_event(event.provider, "paid")
        logger.info(
            "purchase_completed",
            reference=payment.reference,
            event_id=event.event_id,
            token_id=str(token.id),
        )

        await self.issuance.deliver_token_sms(token)
        return token

    async def get_purchase(self, reference: str) -> PurchaseOutcome:
        """
        Current state of a purchase, polling the provider while pending.

        Raises:
            PurchaseNotFoundError: Unknown reference
        """
        payment = await self._find_by_reference(reference)
        if payment is None:
            raise PurchaseNotFoundError(reference)

        if payment.status == PaymentStatus.PENDING.value:
            await self._refresh_from_provider(payment)

        token = None
        if payment.token_id is not None:
            token = await self.session.get(Token, payment.token_id)

        return PurchaseOutcome(
            reference=payment.reference,
            status=PaymentStatus(payment.status),
            token=token,
        )

    async def _refresh_from_provider(self, payment: Payment) -> None:
        try:
            provider = self.providers.for_method(PaymentMethod(payment.provider))
            event = await provider.get_payment_status(payment)
        except (PaymentProviderNotConfiguredError, PaymentProviderError) as exc:
            logger.warning("purchase_status_poll_failed", reference=payment.reference, error=str(exc))
            return

        if event.status != PaymentStatus.PENDING:
            await self.handle_webhook_event(event)

    async def _find_by_reference(self, reference: str) -> Payment | None:
        result = await self.session.execute(select(Payment).where(Payment.reference == reference))
        return result.scalar_one_or_none()

    async def _lock_payment(self, event: WebhookEvent) -> Payment | None:
        """Find the payment an event refers to and lock it for update."""
        if event.payment_id:
            stmt = (
                select(Payment)
                .where(Payment.provider_payment_id == event.payment_id)
                .with_for_update()
            )
            payment = (await self.session.execute(stmt)).scalar_one_or_none()
            if payment is not None:
                return payment

        if event.reference:
            stmt = select(Payment).where(Payment.reference == event.reference).with_for_update()
            return (await self.session.execute(stmt)).scalar_one_or_none()
        return None
