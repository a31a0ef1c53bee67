"""
Billing History Repository

Append-only audit trail. Inserts run inside a SAVEPOINT so that a row
rejected by the unique transaction_id / external_payment_id constraints
is reported as a duplicate without aborting the surrounding transaction.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from billflow.domain.billing import BillingStatus
from billflow.infrastructure.db.models.billing_history import BillingHistoryModel
from billflow.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class BillingHistoryRepository(BaseRepository[BillingHistoryModel]):
    """Data access for the billing_history table."""

    def __init__(self, session: AsyncSession):
        super().__init__(BillingHistoryModel, session)

    async def append(self, entry: BillingHistoryModel) -> Optional[BillingHistoryModel]:
        """
        Insert one history row unless an equivalent row already exists.

        Returns:
            The stored row, or None if the unique constraints rejected it
        """
        try:
            async with self._session.begin_nested():
                self._session.add(entry)
                await self._session.flush()
        except IntegrityError:
            logger.info(
                f"Billing history already recorded "
                f"(transaction={entry.transaction_id}, payment={entry.external_payment_id})"
            )
            return None
        return entry

    async def exists_for_payment(self, external_payment_id: str) -> bool:
        stmt = select(BillingHistoryModel.id).where(
            BillingHistoryModel.external_payment_id == external_payment_id
        )
        result = await self._session.execute(stmt.limit(1))
        return result.first() is not None

    def _filtered(
        self,
        stmt,
        user_id: UUID,
        status: Optional[str],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ):
        stmt = stmt.where(BillingHistoryModel.user_id == user_id)
        if status:
            stmt = stmt.where(BillingHistoryModel.status == status)
        if start_date:
            stmt = stmt.where(BillingHistoryModel.created_at >= start_date)
        if end_date:
            stmt = stmt.where(BillingHistoryModel.created_at <= end_date)
        return stmt

    async def list_for_user(
        self,
        user_id: UUID,
        skip: int = 0,
        limit: int = 10,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[BillingHistoryModel]:
        """Oldest first, so the page reads as a chronological statement."""
        stmt = self._filtered(select(BillingHistoryModel), user_id, status, start_date, end_date)
        stmt = stmt.order_by(BillingHistoryModel.created_at, BillingHistoryModel.invoice_number)
        result = await self._session.execute(stmt.offset(skip).limit(limit))
        return list(result.scalars().all())

    async def summarize(
        self,
        user_id: UUID,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Tuple[int, Decimal, Decimal]:
        """(row count, total amount, paid amount) over the same filters."""
        stmt = select(
            func.count(BillingHistoryModel.id),
            func.coalesce(func.sum(BillingHistoryModel.amount), 0),
            func.coalesce(
                func.sum(
                    case(
                        (BillingHistoryModel.status == BillingStatus.PAID.value, BillingHistoryModel.amount),
                        else_=0,
                    )
                ),
                0,
            ),
        )
        stmt = self._filtered(stmt, user_id, status, start_date, end_date)
        result = await self._session.execute(stmt)
        count, total, paid = result.one()
        return int(count or 0), Decimal(str(total or 0)), Decimal(str(paid or 0))
