"""
Payments API Routes

Gateway checkout: create an order, verify the client-side payment,
create a recurring subscription.
"""

import logging

from fastapi import APIRouter

from billflow.api.dependencies import CheckoutServiceDep, CurrentUserId
from billflow.domain.schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    PlanResponse,
    SubscriptionResponse,
    TransactionResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/payments/create-order", response_model=CreateOrderResponse)
async def create_order(
    request: CreateOrderRequest,
    user_id: CurrentUserId,
    checkout: CheckoutServiceDep,
):
    """
    Create a gateway order for a paid plan.

    The returned order id and key id feed the client checkout widget.
    """
    order, transaction, plan = await checkout.create_order(user_id, request.plan_id)
    return CreateOrderResponse(
        order_id=order["id"],
        amount=order["amount"],
        currency=order.get("currency", plan.currency),
        key_id=checkout.key_id,
        transaction_id=transaction.id,
        plan=PlanResponse.model_validate(plan),
    )


@router.post("/payments/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    request: VerifyPaymentRequest,
    user_id: CurrentUserId,
    checkout: CheckoutServiceDep,
):
    """Verify the checkout signature and settle the transaction."""
    transaction, subscription = await checkout.verify_payment(
        user_id,
        order_id=request.razorpay_order_id,
        payment_id=request.razorpay_payment_id,
        signature=request.razorpay_signature,
        transaction_id=request.transaction_id,
    )
    logger.info(f"Payment verified for order {request.razorpay_order_id}")
    return VerifyPaymentResponse(
        success=True,
        message="Payment verified successfully",
        transaction=TransactionResponse.model_validate(transaction),
        subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
    )


@router.post("/payments/create-subscription", response_model=CreateSubscriptionResponse)
async def create_subscription(
    request: CreateSubscriptionRequest,
    user_id: CurrentUserId,
    checkout: CheckoutServiceDep,
):
    """Create a recurring gateway subscription for a plan."""
    subscription = await checkout.create_recurring_subscription(user_id, request.plan_id)
    return CreateSubscriptionResponse(
        subscription_id=subscription.external_id,
        key_id=checkout.key_id,
        subscription=SubscriptionResponse.model_validate(subscription),
    )
