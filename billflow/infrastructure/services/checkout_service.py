"""
Checkout Service

Gateway-hosted checkout: orders for one-time plan purchases, client-side
payment verification, and recurring gateway subscriptions.

Order transactions use the gateway order id as their reference, which is
how payment.captured webhooks find them. Verification and capture settle
through the same ledger path, so whichever arrives second is a no-op.
"""

import logging
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from billflow.domain.billing import (
    GATEWAY_PAYMENT_METHOD,
    SubscriptionStatus,
    TransactionStatus,
    TransactionType,
    generate_reference,
    utcnow,
)
from billflow.infrastructure.db.models.plan import PlanModel
from billflow.infrastructure.db.models.subscription import SubscriptionModel
from billflow.infrastructure.db.models.transaction import TransactionModel
from billflow.infrastructure.db.models.user import UserModel
from billflow.infrastructure.db.repositories import (
    PlanRepository,
    SubscriptionRepository,
    TransactionRepository,
    UserRepository,
)
from billflow.infrastructure.exceptions import NotFoundError, ValidationError
from billflow.infrastructure.payments.razorpay_service import RazorpayService
from billflow.infrastructure.services.ledger_service import LedgerService


logger = logging.getLogger(__name__)


class CheckoutService:
    """
    Service for the gateway checkout flow.

    Args:
        session: Unit of work for the request
        razorpay: Gateway client
    """

    def __init__(self, session: AsyncSession, razorpay: RazorpayService):
        self._session = session
        self._razorpay = razorpay
        self._users = UserRepository(session)
        self._plans = PlanRepository(session)
        self._subscriptions = SubscriptionRepository(session)
        self._transactions = TransactionRepository(session)
        self._ledger = LedgerService(session)

    @property
    def key_id(self) -> Optional[str]:
        return self._razorpay.key_id

    async def _get_user(self, user_id: UUID) -> UserModel:
        user = await self._users.get_fresh(user_id)
        if user is None:
            raise NotFoundError("User not found", operation="get", table="users")
        return user

    async def _get_paid_plan(self, plan_id: str) -> PlanModel:
        plan = await self._plans.get_by_id(plan_id)
        if plan is None or not plan.is_active:
            raise NotFoundError("Plan not found", operation="get", table="plans")
        if plan.price <= 0:
            raise ValidationError("No payment required for free plan")
        return plan

    async def _ensure_customer(self, user: UserModel) -> str:
        """Gateway customer id for the user, created on first use."""
        if user.gateway_customer_id:
            return user.gateway_customer_id

        customer = await self._razorpay.create_customer(user.email, user.name)
        await self._users.update_billing(user.id, gateway_customer_id=customer["id"])
        return customer["id"]

    # =========================================================================
    # One-time Orders
    # =========================================================================

    async def create_order(
        self,
        user_id: UUID,
        plan_id: str,
    ) -> Tuple[Dict[str, Any], TransactionModel, PlanModel]:
        """
        Create a gateway order for a paid plan and its PROCESSING transaction.

        Returns:
            (gateway order, transaction, plan)
        """
        user = await self._get_user(user_id)
        plan = await self._get_paid_plan(plan_id)
        customer_id = await self._ensure_customer(user)

        receipt = generate_reference()
        order = await self._razorpay.create_order(
            plan.price,
            plan.currency,
            receipt,
            notes={"user_id": str(user_id), "plan_id": str(plan.id)},
        )

        transaction = await self._transactions.add(
            TransactionModel(
                reference=order["id"],
                user_id=user_id,
                type=TransactionType.SUBSCRIPTION_PAYMENT.value,
                amount=plan.price,
                currency=plan.currency,
                status=TransactionStatus.PROCESSING.value,
                payment_method=GATEWAY_PAYMENT_METHOD,
                description=f"Subscription to {plan.name} plan",
                meta={
                    "plan_id": str(plan.id),
                    "receipt": receipt,
                    "customer_id": customer_id,
                },
            )
        )
        logger.info(f"Order {order['id']} created for user {user_id} ({plan.name})")
        return order, transaction, plan

    async def verify_payment(
        self,
        user_id: UUID,
        order_id: str,
        payment_id: str,
        signature: str,
        transaction_id: str,
    ) -> Tuple[TransactionModel, Optional[SubscriptionModel]]:
        """
        Verify the checkout signature and settle the order's transaction.

        An already-settled SUCCESS transaction is returned unchanged.

        Raises:
            SignatureError: signature does not match
            NotFoundError: transaction not owned by the user
            ValidationError: transaction belongs to another order or failed
        """
        self._razorpay.verify_payment_signature(order_id, payment_id, signature)

        transaction = await self._transactions.get_for_user(user_id, transaction_id=transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction not found", operation="verify", table="transactions")
        if transaction.reference != order_id:
            raise ValidationError("Transaction does not match order")

        if transaction.status == TransactionStatus.PROCESSING.value:
            transaction, _ = await self._ledger.settle(
                transaction,
                success=True,
                metadata_patch={
                    "razorpay_payment_id": payment_id,
                    "verified_at": utcnow().isoformat(),
                },
            )

        if transaction.status == TransactionStatus.FAILED.value:
            raise ValidationError("Payment can no longer be verified for this transaction")

        subscription = await self._subscriptions.get_live_for_user(user_id)
        return transaction, subscription

    # =========================================================================
    # Recurring Subscriptions
    # =========================================================================

    async def create_recurring_subscription(
        self,
        user_id: UUID,
        plan_id: str,
    ) -> SubscriptionModel:
        """
        Create a gateway subscription and its local INCOMPLETE twin.

        The gateway id is stored as external_id, the key later
        subscription.* webhooks are matched on.
        """
        user = await self._get_user(user_id)
        plan = await self._get_paid_plan(plan_id)
        if not plan.gateway_plan_id:
            raise ValidationError(f"The {plan.name} plan is not available for recurring billing")

        customer_id = await self._ensure_customer(user)
        gateway_subscription = await self._razorpay.create_subscription(
            plan.gateway_plan_id,
            notes={"user_id": str(user_id), "plan_id": str(plan.id)},
        )

        subscription = await self._subscriptions.add(
            SubscriptionModel(
                user_id=user_id,
                plan_id=plan.id,
                status=SubscriptionStatus.INCOMPLETE.value,
                external_id=gateway_subscription["id"],
                meta={
                    "gateway_status": gateway_subscription.get("status"),
                    "customer_id": customer_id,
                },
            )
        )
        logger.info(f"Gateway subscription {subscription.external_id} created for user {user_id}")
        return subscription
