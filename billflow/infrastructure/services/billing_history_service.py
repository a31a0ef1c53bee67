"""
Billing History Service

Read side of the billing audit trail and the ledger.
"""

import logging
import math
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from billflow.domain.schemas import (
    BillingHistoryPage,
    BillingHistoryResponse,
    BillingStats,
    Pagination,
)
from billflow.infrastructure.db.models.transaction import TransactionModel
from billflow.infrastructure.db.repositories import (
    BillingHistoryRepository,
    TransactionRepository,
)
from billflow.infrastructure.exceptions import NotFoundError, ValidationError


logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class BillingHistoryService:
    """Queries over billing_history and transactions for one user."""

    def __init__(self, session: AsyncSession):
        self._history = BillingHistoryRepository(session)
        self._transactions = TransactionRepository(session)

    async def get_billing_history(
        self,
        user_id: UUID,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> BillingHistoryPage:
        """
        Chronological (oldest first) page of the user's billing history.

        Stats cover every row matching the filters, not just this page.
        """
        if page < 1:
            raise ValidationError("page must be at least 1")
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        rows = await self._history.list_for_user(
            user_id,
            skip=(page - 1) * limit,
            limit=limit,
            status=status,
            start_date=start_date,
            end_date=end_date,
        )
        total, total_amount, paid_amount = await self._history.summarize(
            user_id,
            status=status,
            start_date=start_date,
            end_date=end_date,
        )

        return BillingHistoryPage(
            history=[BillingHistoryResponse.model_validate(row) for row in rows],
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit) if total else 0,
            ),
            stats=BillingStats(
                total_transactions=total,
                total_amount=total_amount,
                paid_amount=paid_amount,
            ),
        )

    async def get_transaction_status(
        self,
        user_id: UUID,
        transaction_id: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> TransactionModel:
        """
        Point lookup by id or reference, restricted to the owner.

        Raises:
            ValidationError: neither key given
            NotFoundError: absent or owned by someone else
        """
        if not transaction_id and not reference:
            raise ValidationError("Transaction ID or reference is required")

        transaction = await self._transactions.get_for_user(
            user_id,
            transaction_id=transaction_id,
            reference=reference,
        )
        if transaction is None:
            raise NotFoundError("Transaction not found", operation="get", table="transactions")
        return transaction
