"""
Payment Method Repository

Saved instruments per user. Deletion is a soft deactivation.
"""

import logging
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from billflow.infrastructure.db.models.payment_method import PaymentMethodModel
from billflow.infrastructure.db.repositories.base_repository import BaseRepository, to_uuid


logger = logging.getLogger(__name__)


class PaymentMethodRepository(BaseRepository[PaymentMethodModel]):
    """Data access for the payment_methods table."""

    def __init__(self, session: AsyncSession):
        super().__init__(PaymentMethodModel, session)

    async def list_active_for_user(self, user_id: UUID) -> List[PaymentMethodModel]:
        """Default first, then most recently added."""
        stmt = (
            select(PaymentMethodModel)
            .where(
                PaymentMethodModel.user_id == user_id,
                PaymentMethodModel.is_active == True,  # noqa: E712
            )
            .order_by(PaymentMethodModel.is_default.desc(), PaymentMethodModel.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_active_for_user(self, payment_method_id: Any, user_id: UUID) -> Optional[PaymentMethodModel]:
        key = to_uuid(payment_method_id)
        if key is None:
            return None
        stmt = select(PaymentMethodModel).where(
            PaymentMethodModel.id == key,
            PaymentMethodModel.user_id == user_id,
            PaymentMethodModel.is_active == True,  # noqa: E712
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def clear_default(self, user_id: UUID) -> None:
        stmt = (
            update(PaymentMethodModel)
            .where(
                PaymentMethodModel.user_id == user_id,
                PaymentMethodModel.is_default == True,  # noqa: E712
            )
            .values(is_default=False)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def deactivate(self, payment_method_id: UUID) -> None:
        stmt = (
            update(PaymentMethodModel)
            .where(PaymentMethodModel.id == payment_method_id)
            .values(is_active=False, is_default=False)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)
        logger.info(f"Payment method {payment_method_id} deactivated")

    async def touch_last_used(self, payment_method_id: UUID, used_at: datetime) -> None:
        stmt = (
            update(PaymentMethodModel)
            .where(PaymentMethodModel.id == payment_method_id)
            .values(last_used=used_at)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)
