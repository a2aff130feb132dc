# ============================================================================
# services/settings_store.py - Operator Settings (key/value)
# ============================================================================

from typing import Dict, Optional
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from cvintelligence.core.config import Settings, settings as env_settings
from cvintelligence.models.setting import AppSetting

TRUTHY_VALUES = {"1", "true", "yes", "on"}


class SettingsStore:
    """Reads and writes the app_settings table.

    Nothing is cached: every call hits the database, so a value saved from the
    admin panel is picked up by the next request. The store never validates or
    coerces values; callers decide whether a value is usable.
    """

    def __init__(self, db: AsyncSession, defaults: Settings = env_settings):
        self.db = db
        self.defaults = defaults

    async def get(self, key: str) -> Optional[str]:
        result = await self.db.execute(select(AppSetting.value).where(AppSetting.key == key))
        return result.scalar_one_or_none()

    async def set(self, key: str, value: str) -> None:
        setting = await self.db.get(AppSetting, key)
        if setting is None:
            self.db.add(AppSetting(key=key, value=value))
        else:
            setting.value = value
        await self.db.commit()

    async def set_many(self, values: Dict[str, str]) -> None:
        for key, value in values.items():
            setting = await self.db.get(AppSetting, key)
            if setting is None:
                self.db.add(AppSetting(key=key, value=value))
            else:
                setting.value = value
        await self.db.commit()

    async def delete(self, key: str) -> None:
        await self.db.execute(delete(AppSetting).where(AppSetting.key == key))
        await self.db.commit()

    async def all(self) -> Dict[str, str]:
        result = await self.db.execute(select(AppSetting).order_by(AppSetting.key))
        return {row.key: row.value for row in result.scalars().all()}

    async def resolve(self, key: str) -> Optional[str]:
        """Stored value, falling back to the environment default for `key`."""
        value = await self.get(key)
        if value not in (None, ""):
            return value
        fallback = getattr(self.defaults, key, None)
        if fallback in (None, ""):
            return None
        return str(fallback)

    async def is_enabled(self, key: str, default: bool = False) -> bool:
        value = await self.get(key)
        if value is None or value.strip() == "":
            return default
        return value.strip().lower() in TRUTHY_VALUES
