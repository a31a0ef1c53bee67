"""
Billing API Routes

Payments, plans, subscriptions, billing history and payment methods for
the authenticated user.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse

from billflow.api.dependencies import (
    BillingHistoryServiceDep,
    CurrentUserId,
    PaymentMethodServiceDep,
    PaymentProcessorDep,
    SubscriptionServiceDep,
)
from billflow.domain.schemas import (
    BillingHistoryPage,
    CancelSubscriptionResponse,
    ChangePlanRequest,
    ChangePlanResponse,
    CurrentSubscriptionResponse,
    InitializeBillingResponse,
    PaymentMethodCreate,
    PaymentMethodResponse,
    PaymentMethodsResponse,
    PlanResponse,
    PlansResponse,
    ProcessPaymentRequest,
    ProcessPaymentResponse,
    SubscriptionResponse,
    TransactionResponse,
    TransactionStatusResponse,
    UserBillingResponse,
)
from billflow.infrastructure.exceptions import BillflowError


logger = logging.getLogger(__name__)

router = APIRouter()


def _subscription_response(subscription, plan=None) -> SubscriptionResponse:
    response = SubscriptionResponse.model_validate(subscription)
    if plan is not None:
        response = response.model_copy(update={"plan": PlanResponse.model_validate(plan)})
    return response


# =============================================================================
# Payments
# =============================================================================

@router.post("/billing/process-payment", response_model=ProcessPaymentResponse)
async def process_payment(
    request: ProcessPaymentRequest,
    user_id: CurrentUserId,
    processor: PaymentProcessorDep,
):
    """
    Charge a saved payment method.

    Returns 200 when the charge succeeded and 400 when it was declined;
    both carry the terminal transaction.
    """
    try:
        transaction, success = await processor.process_payment(
            user_id=user_id,
            amount=request.amount,
            payment_method_id=request.payment_method_id,
            type=request.type,
            description=request.description,
            subscription_id=request.subscription_id,
        )
    except BillflowError:
        raise
    except Exception as e:
        logger.error(f"Error processing payment: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process payment",
        )

    response = ProcessPaymentResponse(
        transaction=TransactionResponse.model_validate(transaction),
        success=success,
        message=(
            "Payment processed successfully"
            if success
            else f"Payment failed: {transaction.failure_reason}"
        ),
    )
    if not success:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=response.model_dump(mode="json", by_alias=True),
        )
    return response


@router.get("/billing/process-payment", response_model=TransactionStatusResponse)
async def get_payment_status(
    user_id: CurrentUserId,
    history: BillingHistoryServiceDep,
    transaction_id: Optional[str] = Query(None, alias="transactionId"),
    reference: Optional[str] = Query(None),
):
    """Look up one of the caller's transactions by id or reference."""
    transaction = await history.get_transaction_status(
        user_id,
        transaction_id=transaction_id,
        reference=reference,
    )
    return TransactionStatusResponse(transaction=TransactionResponse.model_validate(transaction))


# =============================================================================
# Billing History
# =============================================================================

@router.get("/billing/history", response_model=BillingHistoryPage)
async def get_billing_history(
    user_id: CurrentUserId,
    history: BillingHistoryServiceDep,
    page: int = Query(1),
    limit: int = Query(10),
    status_filter: Optional[str] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
):
    """Paginated billing history, oldest first, with summary stats."""
    return await history.get_billing_history(
        user_id,
        page=page,
        limit=limit,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
    )


# =============================================================================
# Plans
# =============================================================================

@router.get("/billing/plans", response_model=PlansResponse)
async def list_plans(service: SubscriptionServiceDep):
    """Active plans in display order. Public."""
    plans = await service.list_plans()
    return PlansResponse(plans=[PlanResponse.model_validate(plan) for plan in plans])


@router.post("/billing/initialize", response_model=InitializeBillingResponse)
async def initialize_billing(user_id: CurrentUserId, service: SubscriptionServiceDep):
    """Put a user without a plan on the free plan."""
    plan, initialized = await service.initialize_billing(user_id)
    return InitializeBillingResponse(
        message="Billing initialized successfully" if initialized else "Billing already initialized",
        plan=PlanResponse.model_validate(plan),
        initialized=initialized,
    )


# =============================================================================
# Subscription
# =============================================================================

@router.get("/billing/subscription", response_model=CurrentSubscriptionResponse)
async def get_subscription(user_id: CurrentUserId, service: SubscriptionServiceDep):
    """Latest subscription with its plan, plus the user's billing projection."""
    user, latest = await service.get_current_subscription(user_id)
    return CurrentSubscriptionResponse(
        subscription=_subscription_response(*latest) if latest else None,
        user=UserBillingResponse.model_validate(user),
    )


@router.post("/billing/subscription", response_model=ChangePlanResponse)
async def change_plan(
    request: ChangePlanRequest,
    user_id: CurrentUserId,
    service: SubscriptionServiceDep,
):
    """
    Switch plans.

    Paid plans without a trial return ``requiresPayment: true`` and an
    INCOMPLETE subscription to pay for via process-payment.
    """
    subscription, requires_payment = await service.change_plan(user_id, request.plan_id)
    plan = await service.get_plan(subscription.plan_id)

    if requires_payment:
        message = "Payment required to activate subscription"
    elif subscription.trial_end is not None:
        message = f"Trial started, ends {subscription.trial_end.date().isoformat()}"
    else:
        message = "Subscription updated successfully"

    return ChangePlanResponse(
        subscription=_subscription_response(subscription, plan),
        requires_payment=requires_payment,
        message=message,
    )


@router.delete("/billing/subscription", response_model=CancelSubscriptionResponse)
async def cancel_subscription(user_id: CurrentUserId, service: SubscriptionServiceDep):
    subscription = await service.cancel_subscription(user_id)
    return CancelSubscriptionResponse(
        subscription=_subscription_response(subscription),
        message="Subscription canceled successfully",
    )


# =============================================================================
# Payment Methods
# =============================================================================

@router.get("/billing/payment-methods", response_model=PaymentMethodsResponse)
async def list_payment_methods(user_id: CurrentUserId, service: PaymentMethodServiceDep):
    methods = await service.list_payment_methods(user_id)
    return PaymentMethodsResponse(
        payment_methods=[PaymentMethodResponse.model_validate(method) for method in methods]
    )


@router.post(
    "/billing/payment-methods",
    response_model=PaymentMethodResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_payment_method(
    request: PaymentMethodCreate,
    user_id: CurrentUserId,
    service: PaymentMethodServiceDep,
):
    """Save an instrument. Details are masked in the response."""
    method = await service.add_payment_method(user_id, request)
    return PaymentMethodResponse.model_validate(method)


@router.delete("/billing/payment-methods/{payment_method_id}")
async def remove_payment_method(
    payment_method_id: str,
    user_id: CurrentUserId,
    service: PaymentMethodServiceDep,
):
    await service.remove_payment_method(user_id, payment_method_id)
    return {"message": "Payment method removed successfully"}
