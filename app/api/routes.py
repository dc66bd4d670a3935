"""
API Routes - Public captive-portal endpoints and payment webhooks.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.api.dependencies import (
    get_network_service,
    get_payment_providers,
    get_purchase_service,
    get_validation_service,
)
from app.exceptions import (
    NetworkNotFoundError,
    PaymentProviderError,
    PaymentProviderNotConfiguredError,
    PurchaseNotFoundError,
    PurchaseValidationError,
    TokenIssuanceError,
    WebhookVerificationError,
)
from app.models.api import (
    NetworkResponse,
    PurchaseStatusResponse,
    PurchaseTokenRequest,
    PurchaseTokenResponse,
    ValidateTokenRequest,
    ValidateTokenResponse,
    WebhookAckResponse,
)
from app.models.domain import PaymentMethod, ValidationReason
from app.observability.logging import get_logger
from app.services.network_config import NetworkService
from app.services.payment_provider import PaymentProvider
from app.services.purchase import PaymentProviders, PurchaseService
from app.services.token_validation import TokenValidationService

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["portal"])

_VALIDATION_STATUS = {
    ValidationReason.VALID: status.HTTP_200_OK,
    ValidationReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ValidationReason.REVOKED: status.HTTP_403_FORBIDDEN,
    ValidationReason.EXPIRED: status.HTTP_403_FORBIDDEN,
}


@router.get("/networks/active", response_model=list[NetworkResponse])
async def list_active_networks(
    service: NetworkService = Depends(get_network_service),
) -> list[NetworkResponse]:
    """Networks offered on the purchase page."""
    networks = await service.list_active_networks()
    return [NetworkResponse.from_network(network) for network in networks]


@router.post("/purchase-token", response_model=PurchaseTokenResponse)
async def purchase_token(
    request: PurchaseTokenRequest,
    networks: NetworkService = Depends(get_network_service),
    service: PurchaseService = Depends(get_purchase_service),
) -> PurchaseTokenResponse:
    """
    Start a token purchase.

    Free networks return the token immediately. Paid networks return what
    the portal needs to collect payment (client secret, redirect URL or
    mobile money instructions); the token arrives by SMS once paid.
    """
    try:
        plan = await networks.resolve_plan(request.network_id, active_only=True)
    except NetworkNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Network not found",
        ) from exc

    try:
        outcome = await service.start_purchase(
            phone_number=request.phone_number,
            plan=plan,
            method=PaymentMethod(request.payment_method),
            amount=request.amount,
            email=request.email,
            mobile_money_operator=request.mobile_money_operator,
        )
    except PurchaseValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    except PaymentProviderNotConfiguredError as exc:
        logger.error("payment_method_not_configured", method=exc.method)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Payment processing not configured for {exc.method}",
        ) from exc
    except PaymentProviderError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error creating payment: {exc.message}",
        ) from exc
    except TokenIssuanceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error generating token",
        ) from exc

    token = outcome.token
    return PurchaseTokenResponse(
        success=True,
        status=outcome.status,
        reference=outcome.reference,
        token=token.code if token else None,
        expires_at=token.expires_at if token else None,
        sms_delivered=token.sms_delivered if token else None,
        payment_url=outcome.payment_url,
        client_secret=outcome.client_secret,
        publishable_key=outcome.publishable_key,
        instructions=outcome.instructions,
    )


@router.get("/purchase-token/{reference}", response_model=PurchaseStatusResponse)
async def get_purchase_status(
    reference: str,
    service: PurchaseService = Depends(get_purchase_service),
) -> PurchaseStatusResponse:
    """Poll a purchase; includes the token once payment is confirmed."""
    try:
        outcome = await service.get_purchase(reference)
    except PurchaseNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Purchase not found: {reference}",
        ) from exc

    token = outcome.token
    return PurchaseStatusResponse(
        reference=outcome.reference,
        status=outcome.status,
        token=token.code if token else None,
        expires_at=token.expires_at if token else None,
        sms_delivered=token.sms_delivered if token else None,
    )


@router.post("/validate-token", response_model=ValidateTokenResponse)
async def validate_token(
    request: ValidateTokenRequest,
    service: TokenValidationService = Depends(get_validation_service),
) -> JSONResponse:
    """
    Validate a code entered on the captive portal.

    200 when access is granted, 400 when no code was sent, 404 for unknown
    codes and 403 for revoked or expired ones.
    """
    if not request.token or not request.token.strip():
        body = ValidateTokenResponse(valid=False, message="Token is required")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
        )

    result = await service.validate_token(request.token)
    body = ValidateTokenResponse(
        valid=result.valid,
        message=result.message,
        expires_at=result.expires_at,
    )
    return JSONResponse(
        status_code=_VALIDATION_STATUS[result.reason],
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


async def _process_webhook(
    provider: PaymentProvider,
    payload: bytes,
    signature: str,
    service: PurchaseService,
) -> WebhookAckResponse:
    try:
        event = await provider.verify_webhook(payload, signature)
    except WebhookVerificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
        ) from exc

    logger.info(
        "payment_webhook_received",
        provider=event.provider,
        event_id=event.event_id,
        event_type=event.event_type,
        payment_id=event.payment_id,
        reference=event.reference,
    )

    try:
        token = await service.handle_webhook_event(event)
    except TokenIssuanceError as exc:
        # Provider retries the delivery
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error generating token",
        ) from exc

    return WebhookAckResponse(
        received=True,
        status="token_issued" if token is not None else "ignored",
        event_id=event.event_id,
    )


@router.post("/webhook/stripe", response_model=WebhookAckResponse)
async def stripe_webhook(
    request: Request,
    providers: PaymentProviders = Depends(get_payment_providers),
    service: PurchaseService = Depends(get_purchase_service),
) -> WebhookAckResponse:
    """
    Handle Stripe webhook events.

    ``payment_intent.succeeded`` issues the token for the purchase.
    """
    if providers.stripe is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Stripe not configured",
        )

    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")
    return await _process_webhook(providers.stripe, payload, signature, service)


@router.post("/payment/webhook", response_model=WebhookAckResponse)
async def paynow_webhook(
    request: Request,
    providers: PaymentProviders = Depends(get_payment_providers),
    service: PurchaseService = Depends(get_purchase_service),
) -> WebhookAckResponse:
    """
    Handle Paynow result URL notifications (web and mobile money).

    The body is urlencoded and carries its own SHA-512 hash.
    """
    if providers.paynow is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Paynow not configured",
        )

    payload = await request.body()
    return await _process_webhook(providers.paynow, payload, "", service)
