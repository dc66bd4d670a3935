"""
Stripe Payment Provider Implementation.

NO DICTIONARIES - All data uses strongly typed models.

The API key is passed per call so the process-wide ``stripe.api_key``
is never mutated.
"""

import json
from decimal import Decimal
from typing import TYPE_CHECKING

import stripe

from app.exceptions import PaymentProviderError, WebhookVerificationError
from app.models.domain import PaymentStatus
from app.observability.logging import get_logger, mask_phone
from app.observability.metrics import metrics
from app.services.payment_provider import (
    PaymentRequest,
    PaymentResult,
    WebhookEvent,
    to_minor_units,
)

if TYPE_CHECKING:
    from app.db.models import Payment

logger = get_logger(__name__)

_EVENT_STATUSES = {
    "payment_intent.succeeded": PaymentStatus.PAID,
    "payment_intent.payment_failed": PaymentStatus.FAILED,
    "payment_intent.canceled": PaymentStatus.FAILED,
}

_INTENT_STATUSES = {
    "succeeded": PaymentStatus.PAID,
    "canceled": PaymentStatus.FAILED,
}


class StripeProvider:
    """
    Stripe payment provider implementation.

    Implements the PaymentProvider protocol with PaymentIntents confirmed
    client-side by Stripe Elements.
    """

    name = "stripe"

    def __init__(self, api_key: str, webhook_secret: str, publishable_key: str = "") -> None:
        """
        Initialize Stripe provider.

        Args:
            api_key: Stripe secret API key
            webhook_secret: Stripe webhook signing secret
            publishable_key: Handed to the portal to mount Stripe Elements
        """
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.publishable_key = publishable_key

    async def create_payment(self, request: PaymentRequest) -> PaymentResult:
        """
        Create a Stripe PaymentIntent.

        Raises:
            PaymentProviderError: If Stripe API call fails
        """
        try:
            logger.info(
                "creating_stripe_payment_intent",
                reference=request.reference,
                amount=str(request.amount),
                currency=request.currency,
            )

            payment_intent = stripe.PaymentIntent.create(
                amount=to_minor_units(request.amount),
                currency=request.currency.lower(),
                description=request.description,
                metadata={
                    "reference": request.reference,
                    "phone_number": request.phone_number,
                    "network_id": str(request.network_id) if request.network_id else "",
                },
                idempotency_key=request.reference,
                api_key=self.api_key,
            )

            logger.info(
                "stripe_payment_intent_created",
                payment_intent_id=payment_intent.id,
                status=payment_intent.status,
            )
            metrics.record_payment_event(self.name, "created")

            return PaymentResult(
                status=PaymentStatus.PENDING,
                payment_id=payment_intent.id,
                client_secret=payment_intent.client_secret,
            )

        except stripe.StripeError as exc:
            metrics.record_payment_event(self.name, "error")
            logger.error(
                "stripe_payment_intent_failed",
                reference=request.reference,
                phone_number=mask_phone(request.phone_number),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PaymentProviderError(f"Stripe payment failed: {exc}") from exc

    async def get_payment_status(self, payment: "Payment") -> WebhookEvent:
        """
        Get current status of a payment intent from Stripe.

        Raises:
            PaymentProviderError: If Stripe API call fails
        """
        if not payment.provider_payment_id:
            return WebhookEvent(
                provider=self.name,
                event_id=f"poll:{payment.reference}",
                event_type="poll",
                status=PaymentStatus.PENDING,
                reference=payment.reference,
            )

        try:
            payment_intent = stripe.PaymentIntent.retrieve(
                payment.provider_payment_id, api_key=self.api_key
            )
        except stripe.StripeError as exc:
            logger.error(
                "stripe_payment_status_failed",
                payment_intent_id=payment.provider_payment_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PaymentProviderError(f"Failed to get payment status: {exc}") from exc

        logger.info(
            "stripe_payment_status_retrieved",
            payment_intent_id=payment_intent.id,
            status=payment_intent.status,
        )
        return WebhookEvent(
            provider=self.name,
            event_id=f"poll:{payment_intent.id}",
            event_type="poll",
            status=_INTENT_STATUSES.get(payment_intent.status, PaymentStatus.PENDING),
            payment_id=payment_intent.id,
            reference=payment.reference,
            amount=Decimal(payment_intent.amount) / 100,
            currency=payment_intent.currency.upper(),
        )

    async def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify and parse Stripe webhook event.

        Args:
            payload: Raw webhook payload
            signature: Stripe-Signature header value

        Raises:
            WebhookVerificationError: If signature verification fails
        """
        try:
            stripe.Webhook.construct_event(  # type: ignore[no-untyped-call]
                payload, signature, self.webhook_secret
            )
        except stripe.SignatureVerificationError as exc:
            logger.error("stripe_webhook_verification_failed", error=str(exc))
            raise WebhookVerificationError("Invalid Stripe webhook signature") from exc
        except ValueError as exc:
            logger.error("stripe_webhook_parsing_failed", error=str(exc))
            raise WebhookVerificationError(f"Failed to parse Stripe webhook: {exc}") from exc

        # Signature checked; read fields from the verified raw body
        event = json.loads(payload)
        payment_intent = event.get("data", {}).get("object", {})
        metadata = payment_intent.get("metadata") or {}
        amount = payment_intent.get("amount")
        currency = payment_intent.get("currency")

        logger.info(
            "stripe_webhook_verified",
            event_id=event.get("id"),
            event_type=event.get("type"),
        )

        return WebhookEvent(
            provider=self.name,
            event_id=event.get("id", ""),
            event_type=event.get("type", ""),
            status=_EVENT_STATUSES.get(event.get("type", ""), PaymentStatus.PENDING),
            payment_id=payment_intent.get("id"),
            reference=metadata.get("reference"),
            amount=Decimal(amount) / 100 if amount is not None else None,
            currency=currency.upper() if currency else None,
        )

    async def close(self) -> None:
        return None
