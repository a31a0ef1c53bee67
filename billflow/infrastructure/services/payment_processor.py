"""
Payment Processor

Synchronous payment path: record the attempt, charge the instrument,
settle the ledger row.

The PROCESSING row is committed before the gateway is called so the
webhook path can see it. Settlement then runs as one unit; if anything
fails after the row exists it is forced to FAILED before the error
propagates.
"""

import logging
from decimal import Decimal
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from billflow.config.settings import get_settings
from billflow.domain.billing import (
    SubscriptionStatus,
    TransactionStatus,
    TransactionType,
    generate_reference,
    to_money,
    utcnow,
)
from billflow.infrastructure.db.models.transaction import TransactionModel
from billflow.infrastructure.db.repositories import (
    PaymentMethodRepository,
    SubscriptionRepository,
    TransactionRepository,
)
from billflow.infrastructure.exceptions import NotFoundError, ValidationError
from billflow.infrastructure.payments.gateway import PaymentGateway
from billflow.infrastructure.services.ledger_service import LedgerService


logger = logging.getLogger(__name__)

PROCESSING_ERROR_REASON = "Payment processing error"


class PaymentProcessor:
    """
    Processes user-initiated payments against a gateway.

    Args:
        session: Session used for every unit of this request
        gateway: Charge backend
    """

    def __init__(self, session: AsyncSession, gateway: PaymentGateway):
        self._session = session
        self._gateway = gateway
        self._transactions = TransactionRepository(session)
        self._payment_methods = PaymentMethodRepository(session)
        self._subscriptions = SubscriptionRepository(session)
        self._ledger = LedgerService(session)

    async def process_payment(
        self,
        user_id: UUID,
        amount: Decimal,
        payment_method_id: str,
        type: TransactionType | str,
        description: Optional[str] = None,
        subscription_id: Optional[str] = None,
    ) -> Tuple[TransactionModel, bool]:
        """
        Charge a saved payment method and settle the resulting transaction.

        Returns:
            (terminal transaction, success)

        Raises:
            ValidationError: bad amount/type or canceled subscription
            NotFoundError: payment method or subscription not owned by user
        """
        # Validation, all before the first write
        try:
            amount = to_money(amount)
        except (ArithmeticError, ValueError):
            raise ValidationError("Invalid amount")
        if amount <= 0:
            raise ValidationError("Amount must be greater than 0")
        try:
            transaction_type = TransactionType(type)
        except ValueError:
            raise ValidationError(f"Unknown transaction type: {type}")

        payment_method = await self._payment_methods.get_active_for_user(payment_method_id, user_id)
        if payment_method is None:
            raise NotFoundError("Payment method not found", operation="get", table="payment_methods")

        subscription = None
        if subscription_id:
            subscription = await self._subscriptions.get_for_user(subscription_id, user_id)
            if subscription is None:
                raise NotFoundError("Subscription not found", operation="get", table="subscriptions")
            if subscription.status == SubscriptionStatus.CANCELED.value:
                raise ValidationError("Subscription is canceled")

        # Record the attempt
        meta = {
            "payment_method_id": str(payment_method.id),
            "payment_method_name": payment_method.name,
        }
        if subscription is not None:
            meta["subscription_id"] = str(subscription.id)

        transaction = await self._transactions.add(
            TransactionModel(
                reference=generate_reference(),
                user_id=user_id,
                type=transaction_type.value,
                amount=amount,
                currency=get_settings().default_currency,
                status=TransactionStatus.PROCESSING.value,
                payment_method=payment_method.type,
                description=description,
                meta=meta,
            )
        )
        transaction_id = transaction.id
        reference = transaction.reference
        payment_method_key = payment_method.id
        payment_method_type = payment_method.type
        await self._session.commit()
        logger.info(f"Transaction {reference} created for user {user_id}: {amount} via {payment_method_type}")

        try:
            result = await self._gateway.attempt_charge(payment_method_type, amount)

            patch = {}
            if result.external_transaction_id:
                patch["external_transaction_id"] = result.external_transaction_id

            settled, _ = await self._ledger.settle(
                transaction,
                success=result.success,
                failure_reason=result.failure_reason,
                metadata_patch=patch,
            )
            await self._payment_methods.touch_last_used(payment_method_key, utcnow())
            await self._session.commit()
        except Exception:
            logger.exception(f"Payment processing failed for transaction {reference}")
            await self._session.rollback()
            await self._force_failed(transaction_id, reference)
            raise

        success = settled.status == TransactionStatus.SUCCESS.value
        logger.info(f"Transaction {reference} settled {settled.status}")
        return settled, success

    async def _force_failed(self, transaction_id: UUID, reference: str) -> None:
        """Conditionally fail the row in a fresh unit after an error."""
        changed = await self._transactions.complete(
            transaction_id,
            TransactionStatus.FAILED,
            processed_at=utcnow(),
            failure_reason=PROCESSING_ERROR_REASON,
        )
        await self._session.commit()
        if changed:
            logger.warning(f"Transaction {reference} forced to FAILED after processing error")
