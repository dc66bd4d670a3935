"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
JSON field names are camelCase on the wire; Python attributes stay snake_case.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models.domain import PaymentStatus, TokenState, classify_token, parse_duration_hours

if TYPE_CHECKING:
    from app.db.models import Network, Token

_PHONE_SEPARATORS = re.compile(r"[\s\-().]")
_PHONE_PATTERN = re.compile(r"^\+?\d{10,15}$")


def normalize_phone_number(value: str) -> str:
    """Strip separators and require 10-15 digits with an optional leading +."""
    normalized = _PHONE_SEPARATORS.sub("", value)
    if not _PHONE_PATTERN.match(normalized):
        raise ValueError("Phone number must be at least 10 digits")
    return normalized


class CamelModel(BaseModel):
    """Base model that speaks camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Purchase Models
# ============================================================================


class PurchaseTokenRequest(CamelModel):
    """POST /api/purchase-token request body."""

    phone_number: str = Field(..., min_length=10, max_length=20)
    network_id: UUID | None = Field(None, description="Network to buy access for")
    amount: Decimal | None = Field(
        None, ge=0, description="Optional client-side price, must match the plan"
    )
    payment_method: Literal["stripe", "paynow", "mobile_money"] = "stripe"
    mobile_money_operator: Literal["ecocash", "onemoney"] = "ecocash"
    email: str | None = Field(None, max_length=255, description="Receipt email (Paynow)")

    @field_validator("phone_number")
    @classmethod
    def validate_phone_number(cls, v: str) -> str:
        return normalize_phone_number(v)


class PurchaseTokenResponse(CamelModel):
    """POST /api/purchase-token response."""

    success: bool
    status: PaymentStatus
    reference: str | None = None
    token: str | None = None
    expires_at: datetime | None = None
    sms_delivered: bool | None = None
    payment_url: str | None = None
    client_secret: str | None = None
    publishable_key: str | None = None
    instructions: str | None = None


class PurchaseStatusResponse(CamelModel):
    """GET /api/purchase-token/{reference} response."""

    reference: str
    status: PaymentStatus
    token: str | None = None
    expires_at: datetime | None = None
    sms_delivered: bool | None = None


class WebhookAckResponse(CamelModel):
    """Acknowledgement returned to payment providers."""

    received: bool = True
    status: str
    event_id: str | None = None


# ============================================================================
# Validation Models
# ============================================================================


class ValidateTokenRequest(CamelModel):
    """POST /api/validate-token request body."""

    token: str | None = Field(None, max_length=32)


class ValidateTokenResponse(CamelModel):
    """POST /api/validate-token response."""

    valid: bool
    message: str
    expires_at: datetime | None = None


# ============================================================================
# Token Administration Models
# ============================================================================


class GenerateTokenRequest(CamelModel):
    """POST /api/tokens/generate request body."""

    phone_number: str = Field(..., min_length=10, max_length=20)
    network_id: UUID | None = None
    amount: Decimal | None = Field(None, ge=0, description="Recorded price, defaults to 0")

    @field_validator("phone_number")
    @classmethod
    def validate_phone_number(cls, v: str) -> str:
        return normalize_phone_number(v)


class GenerateTokenResponse(CamelModel):
    """POST /api/tokens/generate response."""

    success: bool
    token: str
    expires_at: datetime
    sms_delivered: bool
    sms_error: str | None = None


class TokenResponse(CamelModel):
    """Token as shown on the admin dashboard."""

    id: UUID
    code: str
    phone_number: str
    amount: float
    payment_method: str
    payment_reference: str
    network_id: UUID | None
    network_name: str | None
    duration_hours: float
    created_at: datetime
    expires_at: datetime
    used_at: datetime | None
    is_revoked: bool
    sms_delivered: bool
    sms_error: str | None
    status: TokenState

    @classmethod
    def from_token(cls, token: "Token", now: datetime) -> "TokenResponse":
        """Build the response, deriving status from the token's state at ``now``."""
        return cls(
            id=token.id,
            code=token.code,
            phone_number=token.phone_number,
            amount=float(token.amount),
            payment_method=token.payment_method,
            payment_reference=token.payment_reference,
            network_id=token.network_id,
            network_name=token.network_name,
            duration_hours=float(token.duration_hours),
            created_at=token.created_at,
            expires_at=token.expires_at,
            used_at=token.used_at,
            is_revoked=token.is_revoked,
            sms_delivered=token.sms_delivered,
            sms_error=token.sms_error,
            status=classify_token(token.is_revoked, token.expires_at, now),
        )


class TokenStatsResponse(CamelModel):
    """GET /api/tokens/stats response."""

    active_tokens: int
    expiring_soon: int
    generated_today: int


class ActionResponse(CamelModel):
    """Generic success response for admin actions."""

    success: bool
    message: str


class NotificationSweepResponse(CamelModel):
    """POST /api/tokens/send-expiration-notifications response."""

    success: bool
    message: str
    count: int


# ============================================================================
# Network Models
# ============================================================================


def _validate_duration(value: str | int | float | Decimal) -> str:
    parse_duration_hours(value)
    return str(value).strip()


class NetworkCreateRequest(CamelModel):
    """POST /api/networks request body."""

    name: str = Field(..., min_length=1, max_length=100)
    ssid: str = Field(..., min_length=1, max_length=64)
    token_price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    token_duration: str = Field("12", max_length=16, description="Hours of access")
    is_active: bool = True

    @field_validator("name", "ssid")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("token_duration", mode="before")
    @classmethod
    def validate_token_duration(cls, v: str | int | float) -> str:
        return _validate_duration(v)


class NetworkUpdateRequest(CamelModel):
    """PUT /api/networks/{id} request body - only provided fields change."""

    name: str | None = Field(None, min_length=1, max_length=100)
    ssid: str | None = Field(None, min_length=1, max_length=64)
    token_price: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    token_duration: str | None = Field(None, max_length=16)
    is_active: bool | None = None

    @field_validator("name", "ssid")
    @classmethod
    def strip_text(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("token_duration", mode="before")
    @classmethod
    def validate_token_duration(cls, v: str | int | float | None) -> str | None:
        if v is None:
            return v
        return _validate_duration(v)


class NetworkResponse(CamelModel):
    """Network as shown on the dashboard and the public selector."""

    id: UUID
    name: str
    ssid: str
    token_price: float
    token_duration: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_network(cls, network: "Network") -> "NetworkResponse":
        return cls(
            id=network.id,
            name=network.name,
            ssid=network.ssid,
            token_price=float(network.token_price),
            token_duration=network.token_duration,
            is_active=network.is_active,
            created_at=network.created_at,
            updated_at=network.updated_at,
        )


# ============================================================================
# Settings Models
# ============================================================================


class SettingsResponse(CamelModel):
    """GET /api/settings response."""

    network_name: str
    default_token_duration: str
    default_token_price: float
    auto_cleanup: bool
    cleanup_retention_days: int


class SettingsUpdateRequest(CamelModel):
    """PUT /api/settings request body - only provided keys are written."""

    network_name: str | None = Field(None, min_length=1, max_length=100)
    default_token_duration: str | None = Field(None, max_length=16)
    default_token_price: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    auto_cleanup: bool | None = None
    cleanup_retention_days: int | None = Field(None, ge=1, le=3650)

    @field_validator("default_token_duration", mode="before")
    @classmethod
    def validate_default_duration(cls, v: str | int | float | None) -> str | None:
        if v is None:
            return v
        return _validate_duration(v)


# ============================================================================
# Admin Session Models
# ============================================================================


class AdminLoginRequest(CamelModel):
    """POST /api/admin/login request body."""

    password: str = Field(..., min_length=1, max_length=255)


class AdminLoginResponse(CamelModel):
    """POST /api/admin/login response."""

    token: str
    expires_at: datetime


class AdminSessionResponse(CamelModel):
    """GET /api/admin/session response."""

    authenticated: bool
    expires_at: datetime


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(CamelModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    database: Literal["connected", "disconnected"]
    sms_provider: str
    payment_methods: list[str]
    timestamp: datetime


# ============================================================================
# Error Models
# ============================================================================


class ErrorResponse(BaseModel):
    """Body of every error response."""

    message: str
