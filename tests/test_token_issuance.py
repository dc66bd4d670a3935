"""
Tests for TokenIssuanceService.

Covers code generation, collision retry, expiry computation and
fail-open SMS delivery.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from app.exceptions import DataIntegrityError, TokenIssuanceError
from app.models.domain import (
    MANUAL_PAYMENT_REFERENCE,
    TOKEN_ALPHABET,
    TOKEN_CODE_LENGTH,
    PaymentMethod,
    TokenPlan,
)
from app.services.token_issuance import TokenIssuanceService, generate_token_code


def _integrity_error(constraint: str) -> IntegrityError:
    return IntegrityError(
        "INSERT INTO tokens ...",
        {},
        Exception(f'duplicate key value violates unique constraint "{constraint}"'),
    )


class TestGenerateTokenCode:
    """Tests for generate_token_code."""

    def test_default_length(self):
        assert len(generate_token_code()) == TOKEN_CODE_LENGTH == 8

    def test_only_alphabet_characters(self):
        for _ in range(50):
            assert set(generate_token_code()) <= set(TOKEN_ALPHABET)

    def test_alphabet_excludes_lookalikes(self):
        for char in "01OI":
            assert char not in TOKEN_ALPHABET
        assert len(TOKEN_ALPHABET) == 32

    def test_custom_length(self):
        assert len(generate_token_code(12)) == 12


class TestIssueToken:
    """Tests for issue_token."""

    @pytest.mark.asyncio
    async def test_issue_token_persists_and_sends_sms(
        self, db_session, sms_provider, paid_plan, fixed_now
    ):
        """Token is stored with the plan snapshot, committed and texted."""
        service = TokenIssuanceService(
            db_session, sms_provider, code_generator=lambda: "ABCD2345"
        )

        token = await service.issue_token(
            phone_number="+263771234567",
            plan=paid_plan,
            payment_method=PaymentMethod.STRIPE,
            payment_reference="pi_test_123",
            now=fixed_now,
        )

        assert token.code == "ABCD2345"
        assert token.created_at == fixed_now
        assert token.expires_at == fixed_now + timedelta(hours=12)
        assert token.amount == Decimal("5.00")
        assert token.payment_method == "stripe"
        assert token.payment_reference == "pi_test_123"
        assert token.network_id == paid_plan.network_id
        assert token.network_name == "Cafe WiFi"
        assert token.used_at is None
        assert token.is_revoked is False
        assert token.sms_delivered is True
        assert token.sms_error is None

        db_session.add.assert_called_once_with(token)
        assert db_session.commit.await_count == 2  # token row, then SMS outcome

        sms_provider.send.assert_awaited_once()
        phone, body = sms_provider.send.await_args.args
        assert phone == "+263771234567"
        assert "ABCD2345" in body
        assert "12 hours" in body

    @pytest.mark.asyncio
    async def test_fractional_duration(self, db_session, sms_provider, fixed_now):
        """Half-hour plans expire thirty minutes after issuance."""
        plan = TokenPlan(price=Decimal("1.00"), duration_hours=Decimal("0.5"))
        service = TokenIssuanceService(db_session, sms_provider)

        token = await service.issue_token(
            phone_number="+263771234567",
            plan=plan,
            payment_method=PaymentMethod.MANUAL,
            payment_reference=MANUAL_PAYMENT_REFERENCE,
            now=fixed_now,
        )

        assert token.expires_at - token.created_at == timedelta(minutes=30)
        assert "30 minutes" in sms_provider.send.await_args.args[1]

    @pytest.mark.asyncio
    async def test_amount_override(self, db_session, sms_provider, paid_plan):
        """Admin issuance records the given amount instead of the plan price."""
        service = TokenIssuanceService(db_session, sms_provider)

        token = await service.issue_token(
            phone_number="+263771234567",
            plan=paid_plan,
            payment_method=PaymentMethod.MANUAL,
            payment_reference=MANUAL_PAYMENT_REFERENCE,
            amount=Decimal("0"),
        )

        assert token.amount == Decimal("0")
        assert token.payment_method == "manual"
        assert token.payment_reference == "MANUAL_GENERATION"

    @pytest.mark.asyncio
    async def test_sms_failure_is_recorded_not_raised(
        self, db_session, failing_sms_provider, paid_plan
    ):
        """A failed SMS leaves the token issued with the error recorded."""
        service = TokenIssuanceService(db_session, failing_sms_provider)

        token = await service.issue_token(
            phone_number="+263771234567",
            plan=paid_plan,
            payment_method=PaymentMethod.STRIPE,
            payment_reference="pi_test_123",
        )

        assert token.code
        assert token.sms_delivered is False
        assert token.sms_error == "HTTP 500: unavailable"
        assert db_session.commit.await_count == 2


class TestCodeCollisions:
    """Tests for collision retry in create_token."""

    @pytest.mark.asyncio
    async def test_collision_retries_with_new_code(self, db_session, sms_provider, paid_plan):
        """A taken code is replaced with a freshly generated one."""
        db_session.flush = AsyncMock(side_effect=[_integrity_error("uq_tokens_code"), None])
        codes = iter(["AAAA2222", "BBBB3333"])
        service = TokenIssuanceService(
            db_session, sms_provider, code_generator=lambda: next(codes)
        )

        token = await service.create_token(
            phone_number="+263771234567",
            plan=paid_plan,
            payment_method=PaymentMethod.STRIPE,
            payment_reference="pi_test_123",
        )

        assert token.code == "BBBB3333"
        assert db_session.begin_nested.call_count == 2
        db_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_collision_exhaustion_raises(self, db_session, sms_provider, paid_plan):
        """Issuance gives up after max_attempts collisions."""
        db_session.flush = AsyncMock(side_effect=_integrity_error("uq_tokens_code"))
        generator = MagicMock(return_value="AAAA2222")
        service = TokenIssuanceService(
            db_session, sms_provider, max_attempts=3, code_generator=generator
        )

        with pytest.raises(TokenIssuanceError, match="3 attempts"):
            await service.issue_token(
                phone_number="+263771234567",
                plan=paid_plan,
                payment_method=PaymentMethod.STRIPE,
                payment_reference="pi_test_123",
            )

        assert generator.call_count == 3
        db_session.commit.assert_not_awaited()
        sms_provider.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_integrity_errors_are_not_retried(
        self, db_session, sms_provider, paid_plan
    ):
        """Only the code constraint triggers a retry."""
        db_session.flush = AsyncMock(
            side_effect=_integrity_error("ck_tokens_expiry_after_creation")
        )
        generator = MagicMock(return_value="AAAA2222")
        service = TokenIssuanceService(db_session, sms_provider, code_generator=generator)

        with pytest.raises(DataIntegrityError):
            await service.create_token(
                phone_number="+263771234567",
                plan=paid_plan,
                payment_method=PaymentMethod.STRIPE,
                payment_reference="pi_test_123",
            )

        assert generator.call_count == 1
