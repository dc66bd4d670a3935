"""
Tests for the public captive-portal routes and payment webhooks.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from conftest import create_mock_network, create_mock_payment, create_mock_token, make_result
from app.exceptions import PaymentProviderError, WebhookVerificationError
from app.models.domain import PaymentStatus
from app.services.payment_provider import PaymentResult, WebhookEvent
from app.services.purchase import PaymentProviders


def _assign_ids(obj) -> None:
    if getattr(obj, "id", None) is None:
        obj.id = uuid4()


def _paid_event(provider: str = "stripe", **overrides) -> WebhookEvent:
    values = {
        "provider": provider,
        "event_id": "evt_123",
        "event_type": "payment_intent.succeeded",
        "status": PaymentStatus.PAID,
        "payment_id": "pi_test_123",
        "reference": "WIFI-3F9A0C12B7D4",
        "amount": Decimal("5.00"),
        "currency": "USD",
    }
    values.update(overrides)
    return WebhookEvent(**values)


# ============================================================================
# Token validation
# ============================================================================


class TestValidateToken:
    """Tests for POST /api/validate-token."""

    def test_missing_code(self, client, db_session):
        """No code is a 400 without touching the database."""
        response = client.post("/api/validate-token", json={})

        assert response.status_code == 400
        assert response.json() == {"valid": False, "message": "Token is required"}
        db_session.execute.assert_not_awaited()

    def test_blank_code(self, client):
        response = client.post("/api/validate-token", json={"token": "   "})

        assert response.status_code == 400

    def test_unknown_code(self, client):
        response = client.post("/api/validate-token", json={"token": "ZZZZ9999"})

        assert response.status_code == 404
        assert response.json() == {"valid": False, "message": "Invalid token"}

    def test_valid_code(self, client, db_session):
        """An active code grants access and reports its expiry."""
        token = create_mock_token(created_at=datetime.now(UTC) - timedelta(hours=1))
        db_session.execute = AsyncMock(return_value=make_result(scalar=token, rowcount=1))

        response = client.post("/api/validate-token", json={"token": " abcd2345 "})

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["message"] == "Access granted"
        assert "expiresAt" in data
        db_session.commit.assert_awaited_once()

    def test_revoked_code(self, client, db_session):
        token = create_mock_token(created_at=datetime.now(UTC), is_revoked=True)
        db_session.execute = AsyncMock(return_value=make_result(scalar=token))

        response = client.post("/api/validate-token", json={"token": "ABCD2345"})

        assert response.status_code == 403
        assert response.json()["message"] == "Token has been revoked"

    def test_expired_code(self, client, db_session):
        token = create_mock_token(created_at=datetime.now(UTC) - timedelta(hours=13))
        db_session.execute = AsyncMock(return_value=make_result(scalar=token))

        response = client.post("/api/validate-token", json={"token": "ABCD2345"})

        assert response.status_code == 403
        data = response.json()
        assert data["valid"] is False
        assert data["message"] == "Token has expired"
        assert data["expiresAt"]


# ============================================================================
# Networks
# ============================================================================


class TestActiveNetworks:
    """Tests for GET /api/networks/active."""

    def test_lists_active_networks_without_session(self, client, db_session):
        db_session.execute = AsyncMock(
            return_value=make_result(
                scalars=[create_mock_network(), create_mock_network(name="Lobby")]
            )
        )

        response = client.get("/api/networks/active")

        assert response.status_code == 200
        assert [n["name"] for n in response.json()] == ["Cafe WiFi", "Lobby"]


# ============================================================================
# Purchases
# ============================================================================


class TestPurchaseToken:
    """Tests for POST /api/purchase-token."""

    @pytest.fixture(autouse=True)
    def _ids(self, db_session):
        db_session.add = MagicMock(side_effect=_assign_ids)

    def test_stripe_purchase_returns_client_secret(self, client, db_session, stripe_provider):
        network = create_mock_network()
        db_session.get = AsyncMock(return_value=network)
        stripe_provider.create_payment.return_value = PaymentResult(
            status=PaymentStatus.PENDING,
            payment_id="pi_test_123",
            client_secret="pi_test_123_secret",
        )

        response = client.post(
            "/api/purchase-token",
            json={"phoneNumber": "+263771234567", "networkId": str(network.id)},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "pending"
        assert data["reference"].startswith("WIFI-")
        assert data["clientSecret"] == "pi_test_123_secret"
        assert data["publishableKey"] == "pk_test_123"
        assert data["token"] is None

    def test_default_plan_without_network(self, client, db_session, stripe_provider):
        stripe_provider.create_payment.return_value = PaymentResult(
            status=PaymentStatus.PENDING, payment_id="pi_1", client_secret="s"
        )

        response = client.post("/api/purchase-token", json={"phoneNumber": "+263771234567"})

        assert response.status_code == 200
        request = stripe_provider.create_payment.await_args.args[0]
        assert request.amount == Decimal("5.00")

    def test_free_network_returns_token(self, client, db_session, sms_provider):
        """Zero-priced networks skip payment entirely."""
        network = create_mock_network(name="Lobby", token_price=Decimal("0"), token_duration="1")
        db_session.get = AsyncMock(return_value=network)

        response = client.post(
            "/api/purchase-token",
            json={"phoneNumber": "+263771234567", "networkId": str(network.id)},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "paid"
        assert len(data["token"]) == 8
        assert data["smsDelivered"] is True
        sms_provider.send.assert_awaited_once()

    def test_mobile_money_returns_instructions(self, client, db_session, paynow_provider):
        network = create_mock_network()
        db_session.get = AsyncMock(return_value=network)
        paynow_provider.create_payment.return_value = PaymentResult(
            status=PaymentStatus.PENDING,
            poll_url="https://paynow.test/poll",
            instructions="Dial *151#",
        )

        response = client.post(
            "/api/purchase-token",
            json={
                "phoneNumber": "0771234567",
                "networkId": str(network.id),
                "paymentMethod": "mobile_money",
                "mobileMoneyOperator": "ecocash",
            },
        )

        assert response.status_code == 200
        assert response.json()["instructions"] == "Dial *151#"

    def test_inactive_network_not_found(self, client, db_session):
        network = create_mock_network(is_active=False)
        db_session.get = AsyncMock(return_value=network)

        response = client.post(
            "/api/purchase-token",
            json={"phoneNumber": "+263771234567", "networkId": str(network.id)},
        )

        assert response.status_code == 404
        assert response.json() == {"message": "Network not found"}

    def test_invalid_phone(self, client, stripe_provider):
        response = client.post("/api/purchase-token", json={"phoneNumber": "555-CALL-NOW"})

        assert response.status_code == 400
        assert response.json()["message"] == "Phone number must be at least 10 digits"
        stripe_provider.create_payment.assert_not_awaited()

    def test_amount_mismatch(self, client, db_session):
        network = create_mock_network()
        db_session.get = AsyncMock(return_value=network)

        response = client.post(
            "/api/purchase-token",
            json={"phoneNumber": "+263771234567", "networkId": str(network.id), "amount": 1},
        )

        assert response.status_code == 400
        assert "does not match" in response.json()["message"]

    def test_unsupported_payment_method(self, client):
        response = client.post(
            "/api/purchase-token",
            json={"phoneNumber": "+263771234567", "paymentMethod": "cash"},
        )

        assert response.status_code == 400

    def test_provider_not_configured(self, client, overrides):
        from app.api.dependencies import get_payment_providers

        overrides[get_payment_providers] = lambda: PaymentProviders()

        response = client.post("/api/purchase-token", json={"phoneNumber": "+263771234567"})

        assert response.status_code == 500
        assert response.json() == {"message": "Payment processing not configured for stripe"}

    def test_provider_error(self, client, stripe_provider):
        stripe_provider.create_payment.side_effect = PaymentProviderError("card declined")

        response = client.post("/api/purchase-token", json={"phoneNumber": "+263771234567"})

        assert response.status_code == 500
        assert response.json() == {"message": "Error creating payment: card declined"}


class TestPurchaseStatus:
    """Tests for GET /api/purchase-token/{reference}."""

    def test_unknown_reference(self, client):
        response = client.get("/api/purchase-token/WIFI-000000000000")

        assert response.status_code == 404

    def test_paid_purchase_includes_token(self, client, db_session):
        token = create_mock_token()
        payment = create_mock_payment(status=PaymentStatus.PAID, token_id=token.id)
        db_session.execute = AsyncMock(return_value=make_result(scalar=payment))
        db_session.get = AsyncMock(return_value=token)

        response = client.get(f"/api/purchase-token/{payment.reference}")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "paid"
        assert data["token"] == "ABCD2345"
        assert data["smsDelivered"] is True

    def test_pending_purchase(self, client, db_session, stripe_provider):
        payment = create_mock_payment()
        db_session.execute = AsyncMock(return_value=make_result(scalar=payment))
        stripe_provider.get_payment_status.return_value = _paid_event(
            status=PaymentStatus.PENDING, event_type="poll"
        )

        response = client.get(f"/api/purchase-token/{payment.reference}")

        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        assert response.json()["token"] is None


# ============================================================================
# Webhooks
# ============================================================================


class TestStripeWebhook:
    """Tests for POST /api/webhook/stripe."""

    @pytest.fixture(autouse=True)
    def _ids(self, db_session):
        db_session.add = MagicMock(side_effect=_assign_ids)

    def test_paid_event_issues_token(self, client, db_session, stripe_provider, sms_provider):
        payment = create_mock_payment()
        db_session.execute = AsyncMock(return_value=make_result(scalar=payment))
        stripe_provider.verify_webhook.return_value = _paid_event()

        response = client.post(
            "/api/webhook/stripe",
            content=b'{"id": "evt_123"}',
            headers={"stripe-signature": "t=1,v1=abc"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "status": "token_issued", "eventId": "evt_123"}
        stripe_provider.verify_webhook.assert_awaited_once_with(b'{"id": "evt_123"}', "t=1,v1=abc")
        assert payment.token_id is not None
        assert payment.status == "paid"
        sms_provider.send.assert_awaited_once()

    def test_redelivery_issues_once(self, client, db_session, stripe_provider, sms_provider):
        """The same payment confirmed twice yields one token."""
        payment = create_mock_payment()
        db_session.execute = AsyncMock(return_value=make_result(scalar=payment))
        stripe_provider.verify_webhook.return_value = _paid_event()

        headers = {"stripe-signature": "s"}
        first = client.post("/api/webhook/stripe", content=b"{}", headers=headers)
        issued = db_session.add.call_args.args[0]
        db_session.get = AsyncMock(return_value=issued)
        second = client.post("/api/webhook/stripe", content=b"{}", headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert db_session.add.call_count == 1
        assert sms_provider.send.await_count == 1
        assert payment.token_id == issued.id

    def test_invalid_signature(self, client, db_session, stripe_provider, sms_provider):
        stripe_provider.verify_webhook.side_effect = WebhookVerificationError("Invalid signature")

        response = client.post(
            "/api/webhook/stripe", content=b"{}", headers={"stripe-signature": "forged"}
        )

        assert response.status_code == 401
        assert response.json() == {"message": "Invalid signature"}
        db_session.add.assert_not_called()
        sms_provider.send.assert_not_awaited()

    def test_unknown_payment_acknowledged(self, client, stripe_provider):
        stripe_provider.verify_webhook.return_value = _paid_event()

        response = client.post("/api/webhook/stripe", content=b"{}")

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_stripe_not_configured(self, client, overrides):
        from app.api.dependencies import get_payment_providers

        overrides[get_payment_providers] = lambda: PaymentProviders()

        response = client.post("/api/webhook/stripe", content=b"{}")

        assert response.status_code == 500
        assert response.json() == {"message": "Stripe not configured"}


class TestPaynowWebhook:
    """Tests for POST /api/payment/webhook."""

    def test_paid_notification_issues_token(self, client, db_session, paynow_provider):
        db_session.add = MagicMock(side_effect=_assign_ids)
        payment = create_mock_payment(provider="paynow", provider_payment_id=None)
        db_session.execute = AsyncMock(return_value=make_result(scalar=payment))
        paynow_provider.verify_webhook.return_value = _paid_event(
            provider="paynow", event_id="91234:Paid", event_type="Paid", payment_id="91234"
        )
        body = b"reference=WIFI-3F9A0C12B7D4&status=Paid&hash=ABC"

        response = client.post(
            "/api/payment/webhook",
            content=body,
            headers={"content-type": "application/x-www-form-urlencoded"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "token_issued"
        paynow_provider.verify_webhook.assert_awaited_once_with(body, "")

    def test_bad_hash(self, client, paynow_provider):
        paynow_provider.verify_webhook.side_effect = WebhookVerificationError("Hash mismatch")

        response = client.post("/api/payment/webhook", content=b"status=Paid&hash=X")

        assert response.status_code == 401

    def test_paynow_not_configured(self, client, overrides, stripe_provider):
        from app.api.dependencies import get_payment_providers

        overrides[get_payment_providers] = lambda: PaymentProviders(stripe=stripe_provider)

        response = client.post("/api/payment/webhook", content=b"status=Paid")

        assert response.status_code == 500
        assert response.json() == {"message": "Paynow not configured"}
