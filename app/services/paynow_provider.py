"""
Paynow Payment Provider Implementation.

Covers web checkout (redirect to Paynow) and mobile money express checkout
(EcoCash / OneMoney USSD push). Paynow speaks urlencoded forms; every
message carries a SHA-512 hash over its field values plus the integration
key.
"""

import hashlib
import hmac
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING
from urllib.parse import parse_qsl

import httpx

from app.exceptions import PaymentProviderError, WebhookVerificationError
from app.models.domain import PaymentMethod, PaymentStatus
from app.observability.logging import get_logger, mask_phone
from app.observability.metrics import metrics
from app.services.payment_provider import PaymentRequest, PaymentResult, WebhookEvent

if TYPE_CHECKING:
    from app.db.models import Payment

logger = get_logger(__name__)

PAID_STATUSES = frozenset({"paid", "awaiting delivery", "delivered"})
FAILED_STATUSES = frozenset({"cancelled", "failed", "disputed", "refunded"})


def paynow_hash(fields: list[tuple[str, str]], integration_key: str) -> str:
    """Uppercase hex SHA-512 of the field values (in order, hash excluded) plus the key."""
    message = "".join(value for key, value in fields if key.lower() != "hash")
    return hashlib.sha512((message + integration_key).encode("utf-8")).hexdigest().upper()


def map_paynow_status(status: str) -> PaymentStatus:
    normalized = status.strip().lower()
    if normalized in PAID_STATUSES:
        return PaymentStatus.PAID
    if normalized in FAILED_STATUSES:
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING


class PaynowProvider:
    """
    Paynow payment provider implementation.

    Implements the PaymentProvider protocol for both the ``paynow`` and
    ``mobile_money`` payment methods.
    """

    name = "paynow"
    INITIATE_URL = "https://www.paynow.co.zw/interface/initiatetransaction"
    REMOTE_URL = "https://www.paynow.co.zw/interface/remotetransaction"

    def __init__(
        self,
        integration_id: str,
        integration_key: str,
        return_url: str,
        result_url: str,
        auth_email: str = "",
        timeout: float = 20.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.integration_id = integration_id
        self.integration_key = integration_key
        self.return_url = return_url
        self.result_url = result_url
        self.auth_email = auth_email
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _signed(self, fields: list[tuple[str, str]]) -> list[tuple[str, str]]:
        return [*fields, ("hash", paynow_hash(fields, self.integration_key))]

    def _verify(self, fields: list[tuple[str, str]]) -> bool:
        received = next((value for key, value in fields if key.lower() == "hash"), "")
        expected = paynow_hash(fields, self.integration_key)
        return hmac.compare_digest(received.upper(), expected)

    async def create_payment(self, request: PaymentRequest) -> PaymentResult:
        """
        Initiate a Paynow transaction.

        Mobile money requests go to the remote transaction endpoint and
        return USSD instructions; everything else returns a browser URL.

        Raises:
            PaymentProviderError: If Paynow rejects the request or can't be reached
        """
        mobile = request.method == PaymentMethod.MOBILE_MONEY
        fields = [
            ("id", self.integration_id),
            ("reference", request.reference),
            ("amount", f"{request.amount:.2f}"),
            ("additionalinfo", request.description),
            ("returnurl", self.return_url),
            ("resulturl", self.result_url),
            ("authemail", request.email or self.auth_email),
        ]
        if mobile:
            fields += [
                ("phone", request.phone_number),
                ("method", request.mobile_money_operator or "ecocash"),
            ]
        fields.append(("status", "Message"))

        url = self.REMOTE_URL if mobile else self.INITIATE_URL
        logger.info(
            "creating_paynow_transaction",
            reference=request.reference,
            amount=str(request.amount),
            mobile=mobile,
            phone_number=mask_phone(request.phone_number) if mobile else None,
        )

        try:
            response = await self.http_client.post(url, data=self._signed(fields))
            response.raise_for_status()
        except httpx.HTTPError as exc:
            metrics.record_payment_event(self.name, "error")
            logger.error("paynow_request_failed", reference=request.reference, error=str(exc))
            raise PaymentProviderError(f"Paynow request failed: {exc}") from exc

        reply = parse_qsl(response.text, keep_blank_values=True)
        values = dict((key.lower(), value) for key, value in reply)

        if values.get("status", "").lower() != "ok":
            metrics.record_payment_event(self.name, "error")
            error = values.get("error", "Unknown Paynow error")
            logger.error("paynow_transaction_rejected", reference=request.reference, error=error)
            raise PaymentProviderError(f"Paynow rejected the payment: {error}")

        if not self._verify(reply):
            metrics.record_payment_event(self.name, "error")
            logger.error("paynow_response_hash_mismatch", reference=request.reference)
            raise PaymentProviderError("Paynow response failed hash verification")

        metrics.record_payment_event(self.name, "created")
        logger.info(
            "paynow_transaction_created",
            reference=request.reference,
            poll_url=values.get("pollurl"),
        )
        return PaymentResult(
            status=PaymentStatus.PENDING,
            payment_url=values.get("browserurl") or None,
            poll_url=values.get("pollurl") or None,
            instructions=values.get("instructions") or None,
        )

    def _parse_status_message(self, fields: list[tuple[str, str]], event_type: str) -> WebhookEvent:
        values = dict((key.lower(), value) for key, value in fields)
        try:
            amount = Decimal(values["amount"]) if values.get("amount") else None
        except InvalidOperation:
            amount = None
        paynow_reference = values.get("paynowreference") or None
        status = values.get("status", "")

        return WebhookEvent(
            provider=self.name,
            event_id=f"{paynow_reference or values.get('reference', '')}:{status}",
            event_type=event_type,
            status=map_paynow_status(status),
            payment_id=paynow_reference,
            reference=values.get("reference") or None,
            amount=amount,
        )

    async def verify_webhook(self, payload: bytes, signature: str = "") -> WebhookEvent:
        """
        Verify and parse a Paynow result URL notification.

        Paynow signs the body itself, so ``signature`` is unused.

        Raises:
            WebhookVerificationError: If the hash doesn't match
        """
        try:
            fields = parse_qsl(payload.decode("utf-8"), keep_blank_values=True, strict_parsing=True)
        except (UnicodeDecodeError, ValueError) as exc:
            logger.error("paynow_webhook_parsing_failed", error=str(exc))
            raise WebhookVerificationError(f"Failed to parse Paynow webhook: {exc}") from exc

        if not self._verify(fields):
            logger.error("paynow_webhook_verification_failed")
            raise WebhookVerificationError("Invalid Paynow webhook hash")

        event = self._parse_status_message(fields, "status_update")
        logger.info(
            "paynow_webhook_verified",
            reference=event.reference,
            status=event.status.value,
        )
        return event

    async def get_payment_status(self, payment: "Payment") -> WebhookEvent:
        """
        Poll Paynow for the current status of a transaction.

        Raises:
            PaymentProviderError: If Paynow can't be reached or the reply is not authentic
        """
        if not payment.poll_url:
            return WebhookEvent(
                provider=self.name,
                event_id=f"poll:{payment.reference}",
                event_type="poll",
                status=PaymentStatus.PENDING,
                reference=payment.reference,
            )

        try:
            response = await self.http_client.post(payment.poll_url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("paynow_poll_failed", reference=payment.reference, error=str(exc))
            raise PaymentProviderError(f"Paynow poll failed: {exc}") from exc

        fields = parse_qsl(response.text, keep_blank_values=True)
        if not self._verify(fields):
            logger.error("paynow_poll_hash_mismatch", reference=payment.reference)
            raise PaymentProviderError("Paynow poll response failed hash verification")

        return self._parse_status_message(fields, "poll")
