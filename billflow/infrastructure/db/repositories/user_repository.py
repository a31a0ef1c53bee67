"""
User Repository

Billing projection of the user: plan pointer, subscription window,
wallet balance and invoice usage.
"""

import logging
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from billflow.infrastructure.db.models.user import UserModel
from billflow.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[UserModel]):
    """Data access for the users table."""

    def __init__(self, session: AsyncSession):
        super().__init__(UserModel, session)

    async def increment_wallet(self, user_id: UUID, amount: Decimal) -> bool:
        """
        Atomically add ``amount`` to the wallet balance.

        Single UPDATE ... SET wallet_balance = wallet_balance + :amount, so
        concurrent top-ups never lose an increment.
        """
        stmt = (
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(wallet_balance=UserModel.wallet_balance + amount)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        logger.info(f"Wallet of user {user_id} credited with {amount}")
        return result.rowcount > 0

    async def update_billing(self, user_id: UUID, **values: Any) -> bool:
        """Write billing projection columns for a user."""
        stmt = (
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def get_fresh(self, user_id: Any) -> Optional[UserModel]:
        return await self.get_by_id(user_id, fresh=True)
