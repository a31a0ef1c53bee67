"""
Billing API DTOs

Request and response models for the billing, payments and webhook routes.
JSON is camelCase on the wire; snake_case field names are accepted on input.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

from billflow.domain.billing import PaymentMethodType, TransactionType, mask_payment_details


# Decimal in Python, number in JSON
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    """Base DTO: camelCase aliases, readable from ORM rows."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# Plans
# =============================================================================

class PlanResponse(CamelModel):
    id: UUID
    name: str
    description: Optional[str] = None
    price: Money
    currency: str
    interval: str
    interval_count: int
    trial_period_days: int
    features: List[str] = Field(default_factory=list)
    limits: dict = Field(default_factory=dict)
    is_active: bool
    is_popular: bool
    sort_order: int


class PlansResponse(CamelModel):
    plans: List[PlanResponse]


# =============================================================================
# Transactions
# =============================================================================

class TransactionResponse(CamelModel):
    """Ledger row as exposed to the owning user."""
    id: UUID
    reference: str
    user_id: UUID
    type: str
    amount: Money
    currency: str
    status: str
    payment_method: Optional[str] = None
    description: Optional[str] = None
    failure_reason: Optional[str] = None
    processed_at: Optional[datetime] = None
    meta: dict = Field(
        default_factory=dict,
        validation_alias=AliasChoices("meta", "metadata"),
        serialization_alias="metadata",
    )
    created_at: datetime
    updated_at: datetime


class ProcessPaymentRequest(CamelModel):
    """Body of POST /billing/process-payment."""
    amount: Decimal = Field(..., gt=0)
    payment_method_id: str = Field(..., min_length=1)
    description: Optional[str] = None
    type: TransactionType
    subscription_id: Optional[str] = None


class ProcessPaymentResponse(CamelModel):
    transaction: TransactionResponse
    success: bool
    message: str


class TransactionStatusResponse(CamelModel):
    transaction: TransactionResponse


# =============================================================================
# Subscriptions
# =============================================================================

class SubscriptionResponse(CamelModel):
    id: UUID
    user_id: UUID
    plan_id: UUID
    status: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    auto_renew: bool
    external_id: Optional[str] = None
    meta: dict = Field(
        default_factory=dict,
        validation_alias=AliasChoices("meta", "metadata"),
        serialization_alias="metadata",
    )
    created_at: datetime
    plan: Optional[PlanResponse] = None


class UserBillingResponse(CamelModel):
    """Billing projection of the user."""
    id: UUID
    email: str
    name: Optional[str] = None
    wallet_balance: Money
    plan_id: Optional[UUID] = None
    subscription_status: Optional[str] = None
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    invoice_usage: int = 0


class CurrentSubscriptionResponse(CamelModel):
    subscription: Optional[SubscriptionResponse] = None
    user: UserBillingResponse


class ChangePlanRequest(CamelModel):
    plan_id: str = Field(..., min_length=1)


class ChangePlanResponse(CamelModel):
    subscription: SubscriptionResponse
    requires_payment: bool
    message: str


class CancelSubscriptionResponse(CamelModel):
    subscription: SubscriptionResponse
    message: str


class InitializeBillingResponse(CamelModel):
    message: str
    plan: PlanResponse
    initialized: bool


# =============================================================================
# Billing History
# =============================================================================

class BillingHistoryResponse(CamelModel):
    id: UUID
    subscription_id: Optional[UUID] = None
    transaction_id: Optional[UUID] = None
    external_payment_id: Optional[str] = None
    amount: Money
    currency: str
    status: str
    plan_name: Optional[str] = None
    billing_reason: str
    description: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    invoice_number: str
    payment_method: Optional[str] = None
    created_at: datetime


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class BillingStats(CamelModel):
    total_transactions: int
    total_amount: Money
    paid_amount: Money


class BillingHistoryPage(CamelModel):
    history: List[BillingHistoryResponse]
    pagination: Pagination
    stats: BillingStats


# =============================================================================
# Payment Methods
# =============================================================================

class PaymentMethodCreate(CamelModel):
    type: PaymentMethodType
    name: str = Field(..., min_length=1, max_length=100)
    details: dict = Field(default_factory=dict)
    is_default: bool = False
    expiry_date: Optional[datetime] = None


class PaymentMethodResponse(CamelModel):
    id: UUID
    type: str
    name: str
    details: dict = Field(default_factory=dict)
    is_default: bool
    is_active: bool
    expiry_date: Optional[datetime] = None
    last_used: Optional[datetime] = None
    created_at: datetime

    @field_validator("details", mode="before")
    @classmethod
    def _mask(cls, value):
        return mask_payment_details(value)


class PaymentMethodsResponse(CamelModel):
    payment_methods: List[PaymentMethodResponse]


# =============================================================================
# Gateway Checkout
# =============================================================================

class CreateOrderRequest(CamelModel):
    plan_id: str = Field(..., min_length=1)


class CreateOrderResponse(CamelModel):
    order_id: str
    amount: int = Field(..., description="Amount in paise")
    currency: str
    key_id: Optional[str] = None
    transaction_id: UUID
    plan: PlanResponse


class VerifyPaymentRequest(CamelModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
    transaction_id: str


class VerifyPaymentResponse(CamelModel):
    success: bool
    message: str
    transaction: TransactionResponse
    subscription: Optional[SubscriptionResponse] = None


class CreateSubscriptionRequest(CamelModel):
    plan_id: str = Field(..., min_length=1)


class CreateSubscriptionResponse(CamelModel):
    subscription_id: str
    key_id: Optional[str] = None
    subscription: SubscriptionResponse


# =============================================================================
# Webhooks
# =============================================================================

class WebhookAck(BaseModel):
    status: str = "success"
