"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Network(Base):
    """
    ORM model for networks table.

    A sellable Wi-Fi network with its own token price and duration.
    """

    __tablename__ = "networks"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    ssid: Mapped[str] = mapped_column(String(64), nullable=False)

    token_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    # Hours, kept as text to match what the dashboard edits
    token_duration: Mapped[str] = mapped_column(String(16), nullable=False, default="12")

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("name", name="uq_networks_name"),
        UniqueConstraint("ssid", name="uq_networks_ssid"),
        CheckConstraint("token_price >= 0", name="ck_networks_price_non_negative"),
        Index("idx_networks_is_active", "is_active"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Network(id={self.id}, name={self.name}, ssid={self.ssid})>"


class Token(Base):
    """
    ORM model for tokens table.

    One row per issued access code. Price and duration are snapshotted at
    issuance so later network edits or deletes never change an issued token.
    """

    __tablename__ = "tokens"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    code: Mapped[str] = mapped_column(String(8), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)

    # Payment
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_reference: Mapped[str] = mapped_column(String(255), nullable=False)

    # Plan snapshot
    network_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("networks.id", ondelete="SET NULL"),
        nullable=True,
    )
    network_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    duration_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)

    # Lifecycle
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # SMS delivery outcome
    sms_delivered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sms_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("code", name="uq_tokens_code"),
        CheckConstraint("expires_at > created_at", name="ck_tokens_expiry_after_creation"),
        CheckConstraint("amount >= 0", name="ck_tokens_amount_non_negative"),
        Index("idx_tokens_expires_at", "expires_at"),
        Index("idx_tokens_created_at", "created_at"),
        Index("idx_tokens_network_id", "network_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Token(id={self.id}, code={self.code}, expires_at={self.expires_at}, "
            f"is_revoked={self.is_revoked})>"
        )


class Setting(Base):
    """
    ORM model for settings table.

    Flat key-value store for global configuration.
    """

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Setting(key={self.key}, value={self.value})>"


class Payment(Base):
    """
    ORM model for payments table.

    Purchases waiting for (or confirmed by) a payment provider. Links to the
    token issued for it so duplicate webhooks never issue twice.
    """

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    reference: Mapped[str] = mapped_column(String(32), nullable=False)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    provider_payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    poll_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    network_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("networks.id", ondelete="SET NULL"),
        nullable=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Plan snapshot taken when the purchase started
    network_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    duration_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    token_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("tokens.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("reference", name="uq_payments_reference"),
        CheckConstraint(
            "status IN ('pending', 'paid', 'failed')",
            name="ck_payments_status",
        ),
        Index(
            "idx_payments_provider_payment_id",
            "provider_payment_id",
            postgresql_where=(provider_payment_id.isnot(None)),
        ),
        Index("idx_payments_status", "status"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Payment(reference={self.reference}, provider={self.provider}, "
            f"status={self.status})>"
        )
