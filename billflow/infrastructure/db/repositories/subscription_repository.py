"""
Subscription Repository

Data access layer for subscription persistence.

Every status write here is a conditional UPDATE guarded by
``status != 'CANCELED'`` so a canceled subscription can never be revived,
whichever path (request or webhook) gets there first.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from billflow.domain.billing import LIVE_SUBSCRIPTION_STATUSES, SubscriptionStatus
from billflow.infrastructure.db.models.plan import PlanModel
from billflow.infrastructure.db.models.subscription import SubscriptionModel
from billflow.infrastructure.db.repositories.base_repository import BaseRepository, to_uuid


logger = logging.getLogger(__name__)

_LIVE = [status.value for status in LIVE_SUBSCRIPTION_STATUSES]


class SubscriptionRepository(BaseRepository[SubscriptionModel]):
    """
    Repository for subscription data access.

    Reads return table models; writes are conditional and report whether
    they changed a row.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionModel, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_for_user(self, subscription_id: Any, user_id: UUID) -> Optional[SubscriptionModel]:
        """Subscription by id, only if owned by ``user_id``."""
        key = to_uuid(subscription_id)
        if key is None:
            return None
        stmt = select(SubscriptionModel).where(
            SubscriptionModel.id == key,
            SubscriptionModel.user_id == user_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_external_id(self, external_id: str) -> Optional[SubscriptionModel]:
        """
        Get subscription by gateway subscription ID.

        Args:
            external_id: Gateway subscription id (sub_...)

        Returns:
            Subscription model or None
        """
        stmt = (
            select(SubscriptionModel)
            .where(SubscriptionModel.external_id == external_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_with_plan_by_external_id(
        self,
        external_id: str,
    ) -> Optional[Tuple[SubscriptionModel, PlanModel]]:
        """Subscription and its plan, joined explicitly."""
        stmt = (
            select(SubscriptionModel, PlanModel)
            .join(PlanModel, PlanModel.id == SubscriptionModel.plan_id)
            .where(SubscriptionModel.external_id == external_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        row = result.first()
        return (row[0], row[1]) if row else None

    async def get_latest_for_user(
        self,
        user_id: UUID,
    ) -> Optional[Tuple[SubscriptionModel, PlanModel]]:
        """Most recently created subscription of a user, with its plan."""
        stmt = (
            select(SubscriptionModel, PlanModel)
            .join(PlanModel, PlanModel.id == SubscriptionModel.plan_id)
            .where(SubscriptionModel.user_id == user_id)
            .order_by(SubscriptionModel.created_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        row = result.first()
        return (row[0], row[1]) if row else None

    async def get_live_for_user(self, user_id: UUID) -> Optional[SubscriptionModel]:
        """The user's TRIAL/ACTIVE subscription, if any."""
        stmt = (
            select(SubscriptionModel)
            .where(
                SubscriptionModel.user_id == user_id,
                SubscriptionModel.status.in_(_LIVE),
            )
            .order_by(SubscriptionModel.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def has_other_live(self, user_id: UUID, exclude_id: Optional[UUID] = None) -> bool:
        stmt = select(SubscriptionModel.id).where(
            SubscriptionModel.user_id == user_id,
            SubscriptionModel.status.in_(_LIVE),
        )
        if exclude_id is not None:
            stmt = stmt.where(SubscriptionModel.id != exclude_id)
        result = await self._session.execute(stmt.limit(1))
        return result.first() is not None

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def transition(
        self,
        subscription_id: UUID,
        from_statuses: Optional[Iterable[SubscriptionStatus]] = None,
        **values: Any,
    ) -> bool:
        """
        Conditionally update a subscription.

        Never touches a CANCELED row. When ``from_statuses`` is given the
        row must also currently be in one of them.

        Returns:
            True if this call changed the row
        """
        stmt = update(SubscriptionModel).where(
            SubscriptionModel.id == subscription_id,
            SubscriptionModel.status != SubscriptionStatus.CANCELED.value,
        )
        if from_statuses is not None:
            stmt = stmt.where(
                SubscriptionModel.status.in_([status.value for status in from_statuses])
            )
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def cancel(self, subscription_id: UUID, canceled_at: datetime, **values: Any) -> bool:
        """CANCELED transition; False if the row was already canceled."""
        changed = await self.transition(
            subscription_id,
            status=SubscriptionStatus.CANCELED.value,
            canceled_at=canceled_at,
            **values,
        )
        if changed:
            logger.info(f"Subscription {subscription_id} canceled")
        return changed

    async def cancel_other_live(
        self,
        user_id: UUID,
        keep_id: Optional[UUID],
        canceled_at: datetime,
    ) -> int:
        """Cancel every live subscription of the user except ``keep_id``."""
        stmt = update(SubscriptionModel).where(
            SubscriptionModel.user_id == user_id,
            SubscriptionModel.status.in_(_LIVE),
        )
        if keep_id is not None:
            stmt = stmt.where(SubscriptionModel.id != keep_id)
        stmt = stmt.values(
            status=SubscriptionStatus.CANCELED.value,
            canceled_at=canceled_at,
            auto_renew=False,
            updated_at=canceled_at,
        ).execution_options(synchronize_session=False)

        result = await self._session.execute(stmt)
        if result.rowcount:
            logger.info(f"Canceled {result.rowcount} superseded subscription(s) for user {user_id}")
        return result.rowcount

    async def list_for_user(self, user_id: UUID) -> List[SubscriptionModel]:
        stmt = (
            select(SubscriptionModel)
            .where(SubscriptionModel.user_id == user_id)
            .order_by(SubscriptionModel.created_at)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
