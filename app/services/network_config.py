"""
Network Configuration Service - CRUD for sellable Wi-Fi networks.

NO DICTIONARIES - Inputs are typed request models, outputs are ORM rows.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Network, utc_now
from app.exceptions import DataIntegrityError, NetworkConflictError, NetworkNotFoundError
from app.models.api import NetworkCreateRequest, NetworkUpdateRequest
from app.models.domain import TokenPlan
from app.observability.logging import get_logger
from app.services.settings_store import SettingsStore

logger = get_logger(__name__)

_UNIQUE_FIELDS = {"uq_networks_name": "name", "uq_networks_ssid": "ssid"}


class NetworkService:
    """Create, read, update and delete network configurations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_networks(self) -> list[Network]:
        """All networks ordered by creation."""
        result = await self.session.execute(select(Network).order_by(Network.created_at))
        return list(result.scalars().all())

    async def list_active_networks(self) -> list[Network]:
        """Networks shown on the public purchase page."""
        stmt = select(Network).where(Network.is_active.is_(True)).order_by(Network.created_at)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_network(self, network_id: UUID) -> Network:
        """
        Get a network by id.

        Raises:
            NetworkNotFoundError: Network doesn't exist
        """
        network = await self.session.get(Network, network_id)
        if network is None:
            raise NetworkNotFoundError(network_id)
        return network

    async def resolve_plan(self, network_id: UUID | None, active_only: bool = False) -> TokenPlan:
        """
        Plan for a network, or the default plan from settings when no
        network is given. Inactive networks are hidden when ``active_only``.

        Raises:
            NetworkNotFoundError: Network doesn't exist (or is inactive)
        """
        if network_id is None:
            return await SettingsStore(self.session).default_plan()

        network = await self.get_network(network_id)
        if active_only and not network.is_active:
            raise NetworkNotFoundError(network_id)
        return TokenPlan.from_network(network)

    async def create_network(self, request: NetworkCreateRequest) -> Network:
        """
        Create a network.

        Raises:
            NetworkConflictError: Name or SSID already used
        """
        now = utc_now()
        network = Network(
            name=request.name,
            ssid=request.ssid,
            token_price=request.token_price,
            token_duration=request.token_duration,
            is_active=request.is_active,
            created_at=now,
            updated_at=now,
        )
        self.session.add(network)
        await self._commit_or_conflict(request.name, request.ssid)

        logger.info(
            "network_created",
            network_id=str(network.id),
            name=network.name,
            ssid=network.ssid,
            token_price=str(network.token_price),
            token_duration=network.token_duration,
        )
        return network

    async def update_network(self, network_id: UUID, request: NetworkUpdateRequest) -> Network:
        """
        Apply a partial update. Fields left out of the request are unchanged.

        Raises:
            NetworkNotFoundError: Network doesn't exist
            NetworkConflictError: New name or SSID already used
        """
        network = await self.get_network(network_id)
        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return network

        for field, value in changes.items():
            setattr(network, field, value)
        network.updated_at = utc_now()

        await self._commit_or_conflict(network.name, network.ssid)
        logger.info(
            "network_updated",
            network_id=str(network_id),
            fields=sorted(changes),
        )
        return network

    async def delete_network(self, network_id: UUID) -> None:
        """
        Delete a network. Issued tokens keep their snapshot fields and
        their network_id becomes NULL through the foreign key.

        Raises:
            NetworkNotFoundError: Network doesn't exist
        """
        network = await self.get_network(network_id)
        await self.session.delete(network)
        await self.session.commit()
        logger.info("network_deleted", network_id=str(network_id), name=network.name)

    async def _commit_or_conflict(self, name: str, ssid: str) -> None:
        try:
            await self.session.flush()
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            detail = str(exc.orig)
            for constraint, field in _UNIQUE_FIELDS.items():
                if constraint in detail:
                    value = name if field == "name" else ssid
                    logger.warning("network_conflict", field=field, value=value)
                    raise NetworkConflictError(field, value) from exc
            logger.error("network_integrity_error", error=detail)
            raise DataIntegrityError(detail) from exc
