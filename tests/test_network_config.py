"""
Tests for NetworkService.

Covers CRUD, partial updates, uniqueness conflicts and plan resolution.
"""

from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import create_mock_network, make_result
from app.db.models import Token
from app.exceptions import NetworkConflictError, NetworkNotFoundError
from app.models.api import NetworkCreateRequest, NetworkUpdateRequest
from app.models.domain import PaymentMethod, TokenPlan
from app.services.network_config import NetworkService
from app.services.token_issuance import TokenIssuanceService


def _unique_violation(constraint: str) -> IntegrityError:
    return IntegrityError(
        "INSERT INTO networks ...",
        {},
        Exception(f'duplicate key value violates unique constraint "{constraint}"'),
    )


class TestCreateNetwork:
    """Tests for create_network."""

    @pytest.mark.asyncio
    async def test_create_network(self, db_session):
        request = NetworkCreateRequest(
            name="Cafe WiFi", ssid="CAFE-GUEST", token_price=Decimal("2.50"), token_duration="6"
        )

        network = await NetworkService(db_session).create_network(request)

        assert network.name == "Cafe WiFi"
        assert network.ssid == "CAFE-GUEST"
        assert network.token_price == Decimal("2.50")
        assert network.token_duration == "6"
        assert network.is_active is True
        db_session.add.assert_called_once_with(network)
        db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "constraint,field,value",
        [
            ("uq_networks_name", "name", "Cafe WiFi"),
            ("uq_networks_ssid", "ssid", "CAFE-GUEST"),
        ],
    )
    async def test_duplicate_raises_conflict(self, db_session, constraint, field, value):
        db_session.flush = AsyncMock(side_effect=_unique_violation(constraint))
        request = NetworkCreateRequest(
            name="Cafe WiFi", ssid="CAFE-GUEST", token_price=Decimal("1")
        )

        with pytest.raises(NetworkConflictError) as exc_info:
            await NetworkService(db_session).create_network(request)

        assert exc_info.value.field == field
        assert exc_info.value.value == value
        db_session.rollback.assert_awaited_once()
        db_session.commit.assert_not_awaited()


class TestUpdateNetwork:
    """Tests for update_network."""

    @pytest.mark.asyncio
    async def test_partial_update_changes_only_given_fields(self, db_session):
        network = create_mock_network(token_price=Decimal("5.00"), token_duration="12")
        db_session.get = AsyncMock(return_value=network)

        updated = await NetworkService(db_session).update_network(
            network.id, NetworkUpdateRequest(token_price=Decimal("3.00"))
        )

        assert updated.token_price == Decimal("3.00")
        assert updated.token_duration == "12"
        assert updated.name == "Cafe WiFi"
        db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deactivate(self, db_session):
        network = create_mock_network()
        db_session.get = AsyncMock(return_value=network)

        updated = await NetworkService(db_session).update_network(
            network.id, NetworkUpdateRequest(is_active=False)
        )

        assert updated.is_active is False

    @pytest.mark.asyncio
    async def test_empty_update_is_noop(self, db_session):
        network = create_mock_network()
        db_session.get = AsyncMock(return_value=network)

        await NetworkService(db_session).update_network(network.id, NetworkUpdateRequest())

        db_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rename_to_existing_name_conflicts(self, db_session):
        network = create_mock_network()
        db_session.get = AsyncMock(return_value=network)
        db_session.flush = AsyncMock(side_effect=_unique_violation("uq_networks_name"))

        with pytest.raises(NetworkConflictError) as exc_info:
            await NetworkService(db_session).update_network(
                network.id, NetworkUpdateRequest(name="Airport WiFi")
            )

        assert exc_info.value.value == "Airport WiFi"

    @pytest.mark.asyncio
    async def test_update_missing_network(self, db_session):
        with pytest.raises(NetworkNotFoundError):
            await NetworkService(db_session).update_network(
                uuid4(), NetworkUpdateRequest(name="Other")
            )


class TestDeleteNetwork:
    """Tests for delete_network."""

    @pytest.mark.asyncio
    async def test_delete(self, db_session):
        network = create_mock_network()
        db_session.get = AsyncMock(return_value=network)

        await NetworkService(db_session).delete_network(network.id)

        db_session.delete.assert_awaited_once_with(network)
        db_session.commit.assert_awaited_once()

    def test_token_network_reference_is_nulled_on_delete(self):
        """Deleting a network clears the reference on its tokens instead of the tokens."""
        (foreign_key,) = Token.__table__.c.network_id.foreign_keys

        assert foreign_key.column.table.name == "networks"
        assert foreign_key.ondelete == "SET NULL"

    @pytest.mark.asyncio
    async def test_issued_token_keeps_its_plan(self, db_session, sms_provider):
        """Editing or deleting a network leaves tokens issued against it unchanged."""
        network = create_mock_network()
        db_session.get = AsyncMock(return_value=network)
        issuance = TokenIssuanceService(db_session, sms_provider)

        token = await issuance.create_token(
            phone_number="+263771234567",
            plan=TokenPlan.from_network(network),
            payment_method=PaymentMethod.STRIPE,
            payment_reference="pi_test_123",
        )

        service = NetworkService(db_session)
        await service.update_network(
            network.id,
            NetworkUpdateRequest(name="Renamed", token_price=Decimal("9"), token_duration="1"),
        )
        await service.delete_network(network.id)

        assert token.amount == Decimal("5.00")
        assert token.duration_hours == Decimal("12")
        assert token.network_name == "Cafe WiFi"
        assert token.network_id == network.id

    @pytest.mark.asyncio
    async def test_delete_missing(self, db_session):
        with pytest.raises(NetworkNotFoundError):
            await NetworkService(db_session).delete_network(uuid4())


class TestResolvePlan:
    """Tests for resolve_plan."""

    @pytest.mark.asyncio
    async def test_network_plan(self, db_session):
        network = create_mock_network(token_price=Decimal("1.00"), token_duration="24")
        db_session.get = AsyncMock(return_value=network)

        plan = await NetworkService(db_session).resolve_plan(network.id)

        assert plan.price == Decimal("1.00")
        assert plan.duration_hours == Decimal("24")
        assert plan.network_id == network.id

    @pytest.mark.asyncio
    async def test_no_network_uses_default_settings(self, db_session):
        db_session.execute = AsyncMock(return_value=make_result(rows=[]))

        plan = await NetworkService(db_session).resolve_plan(None)

        assert plan.price == Decimal("5.00")
        assert plan.duration_hours == Decimal("12")
        assert plan.network_id is None

    @pytest.mark.asyncio
    async def test_inactive_network_hidden_when_active_only(self, db_session):
        network = create_mock_network(is_active=False)
        db_session.get = AsyncMock(return_value=network)

        with pytest.raises(NetworkNotFoundError):
            await NetworkService(db_session).resolve_plan(network.id, active_only=True)

    @pytest.mark.asyncio
    async def test_inactive_network_allowed_for_admin(self, db_session):
        network = create_mock_network(is_active=False)
        db_session.get = AsyncMock(return_value=network)

        plan = await NetworkService(db_session).resolve_plan(network.id)

        assert plan.network_id == network.id


class TestListNetworks:
    """Tests for listings."""

    @pytest.mark.asyncio
    async def test_list_active_networks(self, db_session):
        networks = [
            create_mock_network(name="A", ssid="A"),
            create_mock_network(name="B", ssid="B"),
        ]
        db_session.execute = AsyncMock(return_value=make_result(scalars=networks))

        assert await NetworkService(db_session).list_active_networks() == networks
