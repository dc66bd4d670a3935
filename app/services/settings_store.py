"""
Settings Store - Flat key-value global configuration.

Values are stored as text and exposed as a typed PortalSettings.
Writes are upserts, so the last write to a key wins.
"""

from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Setting, utc_now
from app.models.api import SettingsUpdateRequest
from app.models.domain import PortalSettings, TokenPlan, parse_duration_hours
from app.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SETTINGS: dict[str, str] = {
    "network_name": "WiFi Access",
    "default_token_duration": "12",
    "default_token_price": "5.00",
    "auto_cleanup": "false",
    "cleanup_retention_days": "30",
}


def _format_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


class SettingsStore:
    """Read and write the settings table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_value(self, key: str) -> str | None:
        """Raw stored value, or None when the key was never written."""
        result = await self.session.execute(select(Setting.value).where(Setting.key == key))
        return result.scalar_one_or_none()

    async def set_value(self, key: str, value: str) -> None:
        """Insert or overwrite one key. Does not commit."""
        now = utc_now()
        stmt = insert(Setting).values(key=key, value=value, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Setting.key],
            set_={"value": stmt.excluded.value, "updated_at": now},
        )
        await self.session.execute(stmt)

    async def get_settings(self) -> PortalSettings:
        """Stored values merged over defaults."""
        result = await self.session.execute(select(Setting.key, Setting.value))
        stored = {key: value for key, value in result.all()}
        raw = {**DEFAULT_SETTINGS, **{k: v for k, v in stored.items() if k in DEFAULT_SETTINGS}}
        return self._to_portal_settings(raw)

    async def update_settings(self, request: SettingsUpdateRequest) -> PortalSettings:
        """Write only the keys present in the request, then return the merged view."""
        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        for key, value in changes.items():
            await self.set_value(key, _format_value(value))
        await self.session.commit()

        if changes:
            logger.info("settings_updated", keys=sorted(changes))
        return await self.get_settings()

    async def default_plan(self) -> TokenPlan:
        """Plan used when no network is selected."""
        return (await self.get_settings()).default_plan()

    def _to_portal_settings(self, raw: dict[str, str]) -> PortalSettings:
        duration = raw["default_token_duration"]
        try:
            parse_duration_hours(duration)
        except ValueError:
            logger.warning("invalid_setting_value", key="default_token_duration", value=duration)
            duration = DEFAULT_SETTINGS["default_token_duration"]

        try:
            price = Decimal(raw["default_token_price"])
            if not price.is_finite() or price < 0:
                raise InvalidOperation
        except InvalidOperation:
            logger.warning(
                "invalid_setting_value",
                key="default_token_price",
                value=raw["default_token_price"],
            )
            price = Decimal(DEFAULT_SETTINGS["default_token_price"])

        try:
            retention = int(raw["cleanup_retention_days"])
            if retention < 1:
                raise ValueError
        except ValueError:
            logger.warning(
                "invalid_setting_value",
                key="cleanup_retention_days",
                value=raw["cleanup_retention_days"],
            )
            retention = int(DEFAULT_SETTINGS["cleanup_retention_days"])

        return PortalSettings(
            network_name=raw["network_name"],
            default_token_duration=duration,
            default_token_price=price,
            auto_cleanup=_parse_bool(raw["auto_cleanup"]),
            cleanup_retention_days=retention,
        )
