"""
Payment Method Service

Saved instruments: list, add, deactivate.
"""

import logging
from typing import List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from billflow.domain.schemas import PaymentMethodCreate
from billflow.infrastructure.db.models.payment_method import PaymentMethodModel
from billflow.infrastructure.db.repositories import PaymentMethodRepository
from billflow.infrastructure.exceptions import NotFoundError


logger = logging.getLogger(__name__)


class PaymentMethodService:
    def __init__(self, session: AsyncSession):
        self._payment_methods = PaymentMethodRepository(session)

    async def list_payment_methods(self, user_id: UUID) -> List[PaymentMethodModel]:
        return await self._payment_methods.list_active_for_user(user_id)

    async def add_payment_method(self, user_id: UUID, data: PaymentMethodCreate) -> PaymentMethodModel:
        """Store a new instrument; a new default clears the previous one."""
        if data.is_default:
            await self._payment_methods.clear_default(user_id)

        payment_method = await self._payment_methods.add(
            PaymentMethodModel(
                user_id=user_id,
                type=data.type.value,
                name=data.name,
                details=dict(data.details),
                is_default=data.is_default,
                expiry_date=data.expiry_date,
            )
        )
        logger.info(f"Added {payment_method.type} payment method {payment_method.id} for user {user_id}")
        return payment_method

    async def remove_payment_method(self, user_id: UUID, payment_method_id: str) -> None:
        payment_method = await self._payment_methods.get_active_for_user(payment_method_id, user_id)
        if payment_method is None:
            raise NotFoundError("Payment method not found", operation="delete", table="payment_methods")
        await self._payment_methods.deactivate(payment_method.id)
