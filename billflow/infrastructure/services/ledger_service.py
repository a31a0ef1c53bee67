"""
Ledger Service

Settles transactions and applies their money-moving side effects.

Settlement is the single place where a transaction leaves PROCESSING.
Side effects run only for the caller whose conditional update performed
the SUCCESS transition, and they are written in the same database
transaction as the status change.
"""

import logging
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from billflow.domain.billing import (
    BillingReason,
    BillingStatus,
    TransactionStatus,
    TransactionType,
    generate_invoice_number,
    utcnow,
)
from billflow.infrastructure.db.models.billing_history import BillingHistoryModel
from billflow.infrastructure.db.models.plan import PlanModel
from billflow.infrastructure.db.models.subscription import SubscriptionModel
from billflow.infrastructure.db.models.transaction import TransactionModel
from billflow.infrastructure.db.repositories import (
    BillingHistoryRepository,
    PlanRepository,
    SubscriptionRepository,
    TransactionRepository,
    UserRepository,
)
from billflow.infrastructure.services.subscription_service import SubscriptionService


logger = logging.getLogger(__name__)


class LedgerService:
    """Terminal transitions for the transactions table."""

    def __init__(self, session: AsyncSession):
        self._session = session
        self._transactions = TransactionRepository(session)
        self._users = UserRepository(session)
        self._plans = PlanRepository(session)
        self._subscriptions = SubscriptionRepository(session)
        self._history = BillingHistoryRepository(session)
        self._subscription_service = SubscriptionService(session)

    async def settle(
        self,
        transaction: TransactionModel,
        success: bool,
        failure_reason: Optional[str] = None,
        metadata_patch: Optional[dict] = None,
    ) -> Tuple[TransactionModel, bool]:
        """
        PROCESSING -> SUCCESS | FAILED, with side effects on SUCCESS.

        Args:
            transaction: Row to settle
            success: Outcome reported by the gateway
            failure_reason: Stored on FAILED
            metadata_patch: Keys merged into the transaction metadata

        Returns:
            (current row, whether this call performed the transition)
        """
        now = utcnow()
        status = TransactionStatus.SUCCESS if success else TransactionStatus.FAILED

        changed = await self._transactions.complete(
            transaction.id,
            status,
            processed_at=now,
            failure_reason=None if success else (failure_reason or "Payment failed"),
            metadata_patch=metadata_patch,
        )
        current = await self._transactions.refresh(transaction.id)

        if not changed:
            logger.info(
                f"Transaction {current.reference} already {current.status}; "
                f"settlement as {status.value} skipped"
            )
            return current, False

        if success:
            await self._apply_success(current)

        return current, True

    # =========================================================================
    # Side Effects
    # =========================================================================

    async def _apply_success(self, transaction: TransactionModel) -> None:
        now = transaction.processed_at or utcnow()

        if transaction.type == TransactionType.WALLET_TOPUP.value:
            await self._users.increment_wallet(transaction.user_id, transaction.amount)
            return

        if transaction.type != TransactionType.SUBSCRIPTION_PAYMENT.value:
            return

        meta = transaction.meta or {}
        subscription: Optional[SubscriptionModel] = None
        plan: Optional[PlanModel] = None

        if meta.get("subscription_id"):
            existing = await self._subscriptions.get_by_id(meta["subscription_id"])
            if existing is None:
                logger.warning(f"Transaction {transaction.reference} references unknown subscription")
                return
            plan = await self._plans.get_by_id(existing.plan_id)
            subscription = await self._subscription_service.activate(existing.id, plan, now)
            if subscription is None:
                subscription = existing
        elif meta.get("plan_id"):
            plan = await self._plans.get_by_id(meta["plan_id"])
            if plan is None:
                logger.warning(f"Transaction {transaction.reference} references unknown plan")
                return
            subscription = await self._subscription_service.create_and_activate(
                transaction.user_id,
                plan,
                now,
                meta={"source_transaction": transaction.reference},
            )
        else:
            return

        await self._history.append(
            BillingHistoryModel(
                user_id=transaction.user_id,
                subscription_id=subscription.id,
                transaction_id=transaction.id,
                amount=transaction.amount,
                currency=transaction.currency,
                status=BillingStatus.PAID.value,
                plan_name=plan.name,
                billing_reason=BillingReason.SUBSCRIPTION_PAYMENT.value,
                description=transaction.description or f"Payment for {plan.name} plan",
                period_start=subscription.current_period_start,
                period_end=subscription.current_period_end,
                paid_at=now,
                invoice_number=generate_invoice_number("PAY", transaction.user_id, now),
                payment_method=transaction.payment_method,
                meta={"reference": transaction.reference},
            )
        )

    # =========================================================================
    # Recovery
    # =========================================================================

    async def expire_stale_transactions(self, older_than: timedelta) -> int:
        """
        Fail every PROCESSING transaction created before ``now - older_than``.

        Returns:
            Number of transactions this call moved to FAILED
        """
        cutoff = utcnow() - older_than
        expired = 0
        for transaction in await self._transactions.list_stale(cutoff):
            _, changed = await self.settle(
                transaction,
                success=False,
                failure_reason="Payment timed out",
                metadata_patch={"expired_at": utcnow().isoformat()},
            )
            if changed:
                expired += 1

        if expired:
            logger.info(f"Expired {expired} stale transaction(s) older than {cutoff}")
        return expired
