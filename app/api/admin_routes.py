"""
Admin API routes for managing tokens, networks and settings.

Protected by the admin session credential (see admin_auth_routes).
"""

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.admin_dependencies import require_admin
from app.api.dependencies import (
    get_expiration_notifier,
    get_issuance_service,
    get_network_service,
    get_read_token_store,
    get_settings_store,
    get_token_store,
)
from app.db.models import utc_now
from app.exceptions import (
    DataIntegrityError,
    NetworkConflictError,
    NetworkNotFoundError,
    TokenIssuanceError,
    TokenNotFoundError,
)
from app.models.api import (
    ActionResponse,
    GenerateTokenRequest,
    GenerateTokenResponse,
    NetworkCreateRequest,
    NetworkResponse,
    NetworkUpdateRequest,
    NotificationSweepResponse,
    SettingsResponse,
    SettingsUpdateRequest,
    TokenResponse,
    TokenStatsResponse,
)
from app.models.domain import MANUAL_PAYMENT_REFERENCE, PaymentMethod, PortalSettings
from app.observability.logging import get_logger
from app.observability.metrics import metrics
from app.services.expiration_notifier import ExpirationNotifier
from app.services.network_config import NetworkService
from app.services.settings_store import SettingsStore
from app.services.token_issuance import TokenIssuanceService
from app.services.token_store import TokenStore

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["admin"], dependencies=[Depends(require_admin)])


def _not_found(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


def _integrity_conflict() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Network conflicts with existing data",
    )


def _settings_response(portal: PortalSettings) -> SettingsResponse:
    return SettingsResponse(
        network_name=portal.network_name,
        default_token_duration=portal.default_token_duration,
        default_token_price=float(portal.default_token_price),
        auto_cleanup=portal.auto_cleanup,
        cleanup_retention_days=portal.cleanup_retention_days,
    )


# ============================================================================
# Tokens
# ============================================================================


@router.get("/tokens", response_model=list[TokenResponse])
async def list_tokens(store: TokenStore = Depends(get_read_token_store)) -> list[TokenResponse]:
    """All tokens, newest first."""
    now = utc_now()
    return [TokenResponse.from_token(token, now) for token in await store.list_all()]


@router.get("/tokens/active", response_model=list[TokenResponse])
async def list_active_tokens(
    store: TokenStore = Depends(get_read_token_store),
) -> list[TokenResponse]:
    """Tokens currently granting access."""
    now = utc_now()
    return [TokenResponse.from_token(token, now) for token in await store.list_active(now)]


@router.get("/tokens/stats", response_model=TokenStatsResponse)
async def token_stats(store: TokenStore = Depends(get_read_token_store)) -> TokenStatsResponse:
    """Dashboard counters."""
    stats = await store.stats(utc_now())
    return TokenStatsResponse(
        active_tokens=stats.active_tokens,
        expiring_soon=stats.expiring_soon,
        generated_today=stats.generated_today,
    )


@router.post("/tokens/generate", response_model=GenerateTokenResponse)
async def generate_token(
    request: GenerateTokenRequest,
    networks: NetworkService = Depends(get_network_service),
    issuance: TokenIssuanceService = Depends(get_issuance_service),
) -> GenerateTokenResponse:
    """
    Issue a token without payment and text it to the phone number.

    Duration comes from the selected network, or the default setting.
    """
    try:
        plan = await networks.resolve_plan(request.network_id)
    except NetworkNotFoundError as exc:
        raise _not_found("Network not found") from exc

    try:
        token = await issuance.issue_token(
            phone_number=request.phone_number,
            plan=plan,
            payment_method=PaymentMethod.MANUAL,
            payment_reference=MANUAL_PAYMENT_REFERENCE,
            amount=request.amount if request.amount is not None else Decimal("0"),
        )
    except TokenIssuanceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error generating token",
        ) from exc

    return GenerateTokenResponse(
        success=True,
        token=token.code,
        expires_at=token.expires_at,
        sms_delivered=token.sms_delivered,
        sms_error=token.sms_error,
    )


@router.post("/tokens/{token_id}/revoke", response_model=ActionResponse)
async def revoke_token(
    token_id: UUID,
    store: TokenStore = Depends(get_token_store),
) -> ActionResponse:
    """Revoke a token. Revoking an already revoked token succeeds."""
    try:
        token = await store.revoke(token_id, utc_now())
    except TokenNotFoundError as exc:
        raise _not_found("Token not found") from exc

    await store.session.commit()
    metrics.tokens_revoked_total.inc()
    logger.info("token_revoked", token_id=str(token_id), revoked_at=token.revoked_at.isoformat())
    return ActionResponse(success=True, message="Token revoked")


@router.post("/tokens/send-expiration-notifications", response_model=NotificationSweepResponse)
async def send_expiration_notifications(
    notifier: ExpirationNotifier = Depends(get_expiration_notifier),
) -> NotificationSweepResponse:
    """Text every expired, non-revoked token holder."""
    count = await notifier.notify_expired()
    return NotificationSweepResponse(
        success=True,
        message=f"Sent {count} expiration notifications",
        count=count,
    )


# ============================================================================
# Networks
# ============================================================================


@router.get("/networks", response_model=list[NetworkResponse])
async def list_networks(
    service: NetworkService = Depends(get_network_service),
) -> list[NetworkResponse]:
    """All networks, active or not."""
    return [NetworkResponse.from_network(network) for network in await service.list_networks()]


@router.post("/networks", response_model=NetworkResponse, status_code=status.HTTP_201_CREATED)
async def create_network(
    request: NetworkCreateRequest,
    service: NetworkService = Depends(get_network_service),
) -> NetworkResponse:
    """Create a network."""
    try:
        network = await service.create_network(request)
    except NetworkConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except DataIntegrityError as exc:
        raise _integrity_conflict() from exc
    return NetworkResponse.from_network(network)


@router.get("/networks/{network_id}", response_model=NetworkResponse)
async def get_network(
    network_id: UUID,
    service: NetworkService = Depends(get_network_service),
) -> NetworkResponse:
    """Get one network."""
    try:
        network = await service.get_network(network_id)
    except NetworkNotFoundError as exc:
        raise _not_found("Network not found") from exc
    return NetworkResponse.from_network(network)


@router.put("/networks/{network_id}", response_model=NetworkResponse)
async def update_network(
    network_id: UUID,
    request: NetworkUpdateRequest,
    service: NetworkService = Depends(get_network_service),
) -> NetworkResponse:
    """Partially update a network."""
    try:
        network = await service.update_network(network_id, request)
    except NetworkNotFoundError as exc:
        raise _not_found("Network not found") from exc
    except NetworkConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except DataIntegrityError as exc:
        raise _integrity_conflict() from exc
    return NetworkResponse.from_network(network)


@router.delete("/networks/{network_id}", response_model=ActionResponse)
async def delete_network(
    network_id: UUID,
    service: NetworkService = Depends(get_network_service),
) -> ActionResponse:
    """Delete a network. Tokens issued for it are kept."""
    try:
        await service.delete_network(network_id)
    except NetworkNotFoundError as exc:
        raise _not_found("Network not found") from exc
    return ActionResponse(success=True, message="Network deleted")


# ============================================================================
# Settings
# ============================================================================


@router.get("/settings", response_model=SettingsResponse)
async def get_settings(store: SettingsStore = Depends(get_settings_store)) -> SettingsResponse:
    """Global portal settings."""
    return _settings_response(await store.get_settings())


@router.put("/settings", response_model=SettingsResponse)
async def update_settings(
    request: SettingsUpdateRequest,
    store: SettingsStore = Depends(get_settings_store),
) -> SettingsResponse:
    """Update the given settings keys; others are left as they are."""
    return _settings_response(await store.update_settings(request))
