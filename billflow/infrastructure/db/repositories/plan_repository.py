"""
Plan Repository

Read access to the plan catalogue plus idempotent seeding.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from billflow.infrastructure.db.models.plan import PlanModel
from billflow.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class PlanRepository(BaseRepository[PlanModel]):
    """Data access for the plans table."""

    def __init__(self, session: AsyncSession):
        super().__init__(PlanModel, session)

    async def list_active(self) -> List[PlanModel]:
        """Active plans in display order."""
        stmt = (
            select(PlanModel)
            .where(PlanModel.is_active == True)  # noqa: E712
            .order_by(PlanModel.sort_order, PlanModel.price)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_free_plan(self) -> Optional[PlanModel]:
        """The active zero-priced plan with the lowest sort order."""
        stmt = (
            select(PlanModel)
            .where(PlanModel.is_active == True, PlanModel.price == 0)  # noqa: E712
            .order_by(PlanModel.sort_order)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Optional[PlanModel]:
        stmt = select(PlanModel).where(PlanModel.name == name)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert_by_name(self, values: dict) -> PlanModel:
        """Insert a plan, or refresh the catalogue fields of an existing one."""
        existing = await self.get_by_name(values["name"])
        if existing is None:
            logger.info(f"Seeding plan {values['name']}")
            return await self.add(PlanModel(**values))

        for field, value in values.items():
            setattr(existing, field, value)
        self._session.add(existing)
        await self._session.flush()
        return existing
