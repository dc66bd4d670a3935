"""
FastAPI Dependencies - Adapter and service injection.

NO DICTIONARIES - All dependencies return typed objects.

Adapters are built once in the application lifespan and stored on
``app.state``; tests replace them with ``app.dependency_overrides``.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.session import get_read_db, get_write_db
from app.services.admin_auth import AdminAuthService
from app.services.expiration_notifier import ExpirationNotifier
from app.services.network_config import NetworkService
from app.services.purchase import PaymentProviders, PurchaseService
from app.services.settings_store import SettingsStore
from app.services.sms_provider import SmsProvider
from app.services.token_issuance import TokenIssuanceService
from app.services.token_store import TokenStore
from app.services.token_validation import TokenValidationService

# ============================================================================
# Adapters
# ============================================================================


def get_sms_provider(request: Request) -> SmsProvider:
    """SMS adapter built at startup."""
    provider: SmsProvider = request.app.state.sms_provider
    return provider


def get_payment_providers(request: Request) -> PaymentProviders:
    """Payment adapters built at startup."""
    providers: PaymentProviders = request.app.state.payment_providers
    return providers


def get_admin_auth_service() -> AdminAuthService:
    """Admin auth service configured from settings."""
    return AdminAuthService(
        admin_password=settings.admin_password,
        jwt_secret=settings.admin_jwt_secret,
        jwt_expire_hours=settings.admin_session_hours,
    )


# ============================================================================
# Services
# ============================================================================


def get_token_store(db: AsyncSession = Depends(get_write_db)) -> TokenStore:
    return TokenStore(db)


def get_read_token_store(db: AsyncSession = Depends(get_read_db)) -> TokenStore:
    return TokenStore(db)


def get_network_service(db: AsyncSession = Depends(get_write_db)) -> NetworkService:
    return NetworkService(db)


def get_settings_store(db: AsyncSession = Depends(get_write_db)) -> SettingsStore:
    return SettingsStore(db)


def get_validation_service(db: AsyncSession = Depends(get_write_db)) -> TokenValidationService:
    return TokenValidationService(db)


def get_issuance_service(
    db: AsyncSession = Depends(get_write_db),
    sms_provider: SmsProvider = Depends(get_sms_provider),
) -> TokenIssuanceService:
    return TokenIssuanceService(db, sms_provider)


def get_purchase_service(
    db: AsyncSession = Depends(get_write_db),
    providers: PaymentProviders = Depends(get_payment_providers),
    sms_provider: SmsProvider = Depends(get_sms_provider),
) -> PurchaseService:
    return PurchaseService(db, providers, sms_provider)


def get_expiration_notifier(
    db: AsyncSession = Depends(get_write_db),
    sms_provider: SmsProvider = Depends(get_sms_provider),
) -> ExpirationNotifier:
    return ExpirationNotifier(db, sms_provider)
