"""
Payment Provider Protocol - Provider-agnostic interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from app.models.domain import PaymentMethod, PaymentStatus

if TYPE_CHECKING:
    from app.db.models import Payment


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (5.00) to minor units (500)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PaymentRequest:
    """
    Provider-agnostic payment request.

    ``reference`` is our own identifier and is echoed back by every provider.
    """

    reference: str
    method: PaymentMethod
    amount: Decimal
    currency: str
    description: str
    phone_number: str
    network_id: UUID | None = None
    email: str | None = None
    mobile_money_operator: str | None = None


@dataclass(frozen=True)
class PaymentResult:
    """
    Provider-agnostic payment result.

    Returned after the provider accepted the payment request. Which of the
    optional fields is set depends on the provider flow.
    """

    status: PaymentStatus
    payment_id: str | None = None  # Provider-specific payment ID
    client_secret: str | None = None  # Stripe client-side confirmation
    payment_url: str | None = None  # Redirect for hosted checkout
    poll_url: str | None = None  # Paynow status URL
    instructions: str | None = None  # Mobile money USSD prompt text


@dataclass(frozen=True)
class WebhookEvent:
    """
    Provider-agnostic webhook event.

    Represents a verified notification (or status poll) from a provider.
    """

    provider: str
    event_id: str
    event_type: str
    status: PaymentStatus
    payment_id: str | None = None
    reference: str | None = None
    amount: Decimal | None = None
    currency: str | None = None


class PaymentProvider(Protocol):
    """
    Payment provider protocol.

    Any payment provider (Stripe, Paynow) must implement this interface so
    the purchase flow stays provider-agnostic.
    """

    name: str

    async def create_payment(self, request: PaymentRequest) -> PaymentResult:
        """
        Start a payment with the provider.

        Raises:
            PaymentProviderError: If payment creation fails
        """
        ...

    async def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify and parse webhook event from provider.

        Raises:
            WebhookVerificationError: If signature verification fails
        """
        ...

    async def get_payment_status(self, payment: "Payment") -> WebhookEvent:
        """
        Ask the provider for the current status of a payment.

        Raises:
            PaymentProviderError: If the provider can't be reached
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...
