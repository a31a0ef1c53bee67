"""
Transaction Repository

Ledger access. The only status write is ``complete``: a conditional
UPDATE ... WHERE status = 'PROCESSING', so each row reaches a terminal
status exactly once no matter how many paths race for it.
"""

import logging
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from billflow.domain.billing import TransactionStatus
from billflow.infrastructure.db.models.transaction import TransactionModel
from billflow.infrastructure.db.repositories.base_repository import BaseRepository, to_uuid


logger = logging.getLogger(__name__)


class TransactionRepository(BaseRepository[TransactionModel]):
    """Data access for the transactions table."""

    def __init__(self, session: AsyncSession):
        super().__init__(TransactionModel, session)

    async def get_by_reference(self, reference: str) -> Optional[TransactionModel]:
        stmt = (
            select(TransactionModel)
            .where(TransactionModel.reference == reference)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_user(
        self,
        user_id: UUID,
        transaction_id: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> Optional[TransactionModel]:
        """Point lookup by id or reference, restricted to the owner."""
        stmt = select(TransactionModel).where(TransactionModel.user_id == user_id)
        if transaction_id:
            key = to_uuid(transaction_id)
            if key is None:
                return None
            stmt = stmt.where(TransactionModel.id == key)
        elif reference:
            stmt = stmt.where(TransactionModel.reference == reference)
        else:
            return None

        result = await self._session.execute(
            stmt.execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def complete(
        self,
        transaction_id: UUID,
        status: TransactionStatus,
        processed_at: datetime,
        failure_reason: Optional[str] = None,
        metadata_patch: Optional[dict] = None,
    ) -> bool:
        """
        PROCESSING -> SUCCESS | FAILED.

        The row is locked first so the metadata merge and the status write
        see the same version of the row.

        Returns:
            True if this call performed the transition
        """
        current = await self.lock(transaction_id)
        if current is None or current.status != TransactionStatus.PROCESSING.value:
            return False

        values: dict = {
            "status": status.value,
            "processed_at": processed_at,
            "updated_at": processed_at,
        }
        if failure_reason is not None:
            values["failure_reason"] = failure_reason
        if metadata_patch:
            values["meta"] = {**(current.meta or {}), **metadata_patch}

        stmt = (
            update(TransactionModel)
            .where(
                TransactionModel.id == transaction_id,
                TransactionModel.status == TransactionStatus.PROCESSING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        changed = result.rowcount > 0
        if changed:
            logger.info(f"Transaction {current.reference} -> {status.value}")
        return changed

    async def list_stale(self, created_before: datetime) -> List[TransactionModel]:
        """PROCESSING rows created before the cutoff."""
        stmt = (
            select(TransactionModel)
            .where(
                TransactionModel.status == TransactionStatus.PROCESSING.value,
                TransactionModel.created_at < created_before,
            )
            .order_by(TransactionModel.created_at)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def refresh(self, transaction_id: Any) -> Optional[TransactionModel]:
        return await self.get_by_id(transaction_id, fresh=True)
