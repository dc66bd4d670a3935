"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from app.db.models import Network, Token

# Uppercase letters and digits without the look-alikes 0/O and 1/I
TOKEN_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
TOKEN_CODE_LENGTH = 8

MANUAL_PAYMENT_REFERENCE = "MANUAL_GENERATION"
FREE_PAYMENT_REFERENCE = "FREE_NETWORK"

# tokens.duration_hours is Numeric(8, 2)
MAX_DURATION_HOURS = Decimal("8760")
_HUNDREDTH = Decimal("0.01")


class PaymentMethod(str, Enum):
    """How a token was paid for."""

    STRIPE = "stripe"
    PAYNOW = "paynow"
    MOBILE_MONEY = "mobile_money"
    MANUAL = "manual"
    FREE = "free"


class PaymentStatus(str, Enum):
    """Lifecycle of a purchase awaiting provider confirmation."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class TokenState(str, Enum):
    """Access-granting state of a token at a point in time."""

    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


class ValidationReason(str, Enum):
    """Outcome of validating a user-submitted code."""

    VALID = "valid"
    NOT_FOUND = "not found"
    REVOKED = "revoked"
    EXPIRED = "expired"


VALIDATION_MESSAGES: dict[ValidationReason, str] = {
    ValidationReason.VALID: "Access granted",
    ValidationReason.NOT_FOUND: "Invalid token",
    ValidationReason.REVOKED: "Token has been revoked",
    ValidationReason.EXPIRED: "Token has expired",
}


def classify_token(is_revoked: bool, expires_at: datetime, now: datetime) -> TokenState:
    """
    Classify a token from its revocation flag and expiry.

    Revocation wins over expiry. A token is expired from the instant
    ``now`` reaches ``expires_at``.
    """
    if is_revoked:
        return TokenState.REVOKED
    if expires_at <= now:
        return TokenState.EXPIRED
    return TokenState.ACTIVE


def parse_duration_hours(value: str | int | float | Decimal) -> Decimal:
    """
    Parse a token duration in hours.

    Raises:
        ValueError: If the value is not a positive number of hours up to one
            year with at most two decimal places
    """
    try:
        hours = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Token duration must be a number of hours, got: {value!r}") from exc
    if not hours.is_finite() or hours <= 0:
        raise ValueError(f"Token duration must be greater than zero, got: {value!r}")
    if hours > MAX_DURATION_HOURS:
        raise ValueError(
            f"Token duration cannot exceed {MAX_DURATION_HOURS} hours, got: {value!r}"
        )
    if hours != hours.quantize(_HUNDREDTH):
        raise ValueError(
            f"Token duration allows at most two decimal places, got: {value!r}"
        )
    return hours


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def describe_duration(hours: Decimal) -> str:
    """
    Human-readable duration for SMS text.

    12 -> "12 hours", 48 -> "2 days", 0.5 -> "30 minutes", 1.5 -> "1 hour 30 minutes"
    """
    total_minutes = int((hours * 60).to_integral_value(rounding=ROUND_HALF_UP))
    if total_minutes >= 1440 and total_minutes % 1440 == 0:
        return _plural(total_minutes // 1440, "day")

    whole_hours, minutes = divmod(total_minutes, 60)
    parts = []
    if whole_hours:
        parts.append(_plural(whole_hours, "hour"))
    if minutes or not parts:
        parts.append(_plural(minutes, "minute"))
    return " ".join(parts)


@dataclass(frozen=True)
class TokenPlan:
    """Price and duration a token is issued against (snapshot of a network)."""

    price: Decimal
    duration_hours: Decimal
    network_id: UUID | None = None
    network_name: str | None = None

    def __post_init__(self) -> None:
        """Validate plan constraints."""
        if self.price < 0:
            raise ValueError(f"Token price cannot be negative: {self.price}")
        if self.duration_hours <= 0:
            raise ValueError(f"Token duration must be positive: {self.duration_hours}")

    @classmethod
    def from_network(cls, network: "Network") -> "TokenPlan":
        """Snapshot a configured network."""
        return cls(
            price=Decimal(network.token_price),
            duration_hours=parse_duration_hours(network.token_duration),
            network_id=network.id,
            network_name=network.name,
        )


@dataclass(frozen=True)
class PortalSettings:
    """Typed view over the key-value settings table."""

    network_name: str
    default_token_duration: str
    default_token_price: Decimal
    auto_cleanup: bool
    cleanup_retention_days: int

    def __post_init__(self) -> None:
        """Validate settings constraints."""
        if self.default_token_price < 0:
            raise ValueError(f"Default price cannot be negative: {self.default_token_price}")
        if self.cleanup_retention_days < 1:
            raise ValueError(
                f"Retention must be at least one day: {self.cleanup_retention_days}"
            )
        parse_duration_hours(self.default_token_duration)

    def default_plan(self) -> TokenPlan:
        """Plan used when a purchase or admin issuance names no network."""
        return TokenPlan(
            price=self.default_token_price,
            duration_hours=parse_duration_hours(self.default_token_duration),
            network_name=self.network_name,
        )


@dataclass(frozen=True)
class TokenValidationResult:
    """Result of validating a submitted code."""

    valid: bool
    reason: ValidationReason
    expires_at: datetime | None = None
    first_use: bool = False

    @property
    def message(self) -> str:
        """Human-readable message for the portal."""
        return VALIDATION_MESSAGES[self.reason]


@dataclass(frozen=True)
class TokenStats:
    """Dashboard counters."""

    active_tokens: int
    expiring_soon: int
    generated_today: int


@dataclass(frozen=True)
class AdminSession:
    """Verified admin session credential."""

    subject: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class PurchaseOutcome:
    """What the portal needs to continue a purchase."""

    reference: str
    status: PaymentStatus
    token: "Token | None" = None
    client_secret: str | None = None
    publishable_key: str | None = None
    payment_url: str | None = None
    instructions: str | None = None
