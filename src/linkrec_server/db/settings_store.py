"""
Linking Settings Store

Persists the singleton linking settings record read by the engine
(thresholds, caps) and by the rendering layer (display options).
"""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import LinkingSettings
from .session import dialect_insert


SETTINGS_ID = 1


class LinkingSettingsStore:
    """
    Read and partially update the singleton settings row.

    The row is created with model defaults on first access, so readers never
    observe a missing record.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _ensure(self) -> None:
        stmt = dialect_insert(self._session, LinkingSettings).values(id=SETTINGS_ID)
        stmt = stmt.on_conflict_do_nothing(index_elements=[LinkingSettings.id])
        await self._session.execute(stmt)

    async def get(self) -> LinkingSettings:
        await self._ensure()
        result = await self._session.execute(
            select(LinkingSettings)
            .where(LinkingSettings.id == SETTINGS_ID)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def update(self, changes: Dict[str, Any]) -> LinkingSettings:
        """
        Apply a partial update and return the full record.

        Parameters
        ----------
        changes : Dict[str, Any]
            Column name -> new value. Unknown keys are rejected.
        """
        columns = LinkingSettings.__table__.columns.keys()
        invalid = sorted(k for k in changes if k == "id" or k not in columns)
        if invalid:
            raise ValueError(f"Unknown settings fields: {invalid}")

        await self._ensure()
        if changes:
            await self._session.execute(
                update(LinkingSettings)
                .where(LinkingSettings.id == SETTINGS_ID)
                .values(**changes)
                .execution_options(synchronize_session=False)
            )
        return await self.get()
