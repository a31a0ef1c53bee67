"""
Billing Domain Models

Enums, value helpers and the default plan catalogue for the billing
bounded context. Everything here is pure: no I/O, no sessions.
"""

import secrets
import time
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from dateutil.relativedelta import relativedelta


class TransactionType(str, Enum):
    """Kind of money movement a transaction records."""
    SUBSCRIPTION_PAYMENT = "SUBSCRIPTION_PAYMENT"
    WALLET_TOPUP = "WALLET_TOPUP"


class TransactionStatus(str, Enum):
    """Ledger status. PROCESSING is the only non-terminal value."""
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status. CANCELED is terminal."""
    INCOMPLETE = "INCOMPLETE"
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    CANCELED = "CANCELED"


class PlanInterval(str, Enum):
    """Billing interval unit for a plan."""
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"
    YEAR = "YEAR"


class PaymentMethodType(str, Enum):
    """Saved payment instrument kinds."""
    UPI = "UPI"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    NET_BANKING = "NET_BANKING"
    WALLET = "WALLET"
    CRYPTO = "CRYPTO"


class BillingReason(str, Enum):
    """Why a billing history row was recorded."""
    SUBSCRIPTION_PAYMENT = "subscription_payment"
    SUBSCRIPTION_RENEWAL = "subscription_renewal"


class BillingStatus(str, Enum):
    PAID = "PAID"


# Subscriptions a user can hold at most one of at a time
LIVE_SUBSCRIPTION_STATUSES = (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE)

# Statuses from which a payment or gateway event may activate a subscription
ACTIVATABLE_SUBSCRIPTION_STATUSES = (
    SubscriptionStatus.INCOMPLETE,
    SubscriptionStatus.TRIAL,
    SubscriptionStatus.ACTIVE,
)

GATEWAY_PAYMENT_METHOD = "Razorpay"


# =============================================================================
# Value helpers
# =============================================================================

def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _epoch_millis(now: Optional[datetime] = None) -> int:
    if now is None:
        return time.time_ns() // 1_000_000
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return int(now.timestamp() * 1000)


def generate_reference(now: Optional[datetime] = None) -> str:
    """Internal transaction reference: TXN-<epoch millis>-<8 hex chars>."""
    return f"TXN-{_epoch_millis(now)}-{secrets.token_hex(4).upper()}"


def generate_invoice_number(
    prefix: str,
    user_id: UUID | str,
    now: Optional[datetime] = None,
) -> str:
    """
    Invoice number for a billing history row.

    PAY- for first payments, REC- for recurring charges. The random tail
    keeps numbers unique when two rows are written in the same millisecond.
    """
    user_suffix = str(user_id).replace("-", "")[-4:].upper()
    return f"{prefix}-{_epoch_millis(now)}-{user_suffix}-{secrets.token_hex(3).upper()}"


def compute_period_end(
    start: datetime,
    interval: PlanInterval | str,
    interval_count: int = 1,
) -> datetime:
    """
    End of a billing period that begins at ``start``.

    Calendar arithmetic: a monthly period starting Jan 31 ends Feb 28/29.
    """
    interval = PlanInterval(interval)
    count = max(int(interval_count or 1), 1)

    if interval == PlanInterval.DAY:
        return start + relativedelta(days=count)
    if interval == PlanInterval.WEEK:
        return start + relativedelta(weeks=count)
    if interval == PlanInterval.YEAR:
        return start + relativedelta(years=count)
    return start + relativedelta(months=count)


def to_money(value: Any) -> Decimal:
    """Normalize a numeric value to a two-place Decimal."""
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def from_paise(amount: Any) -> Decimal:
    """Gateway amounts are integers in the smallest currency unit."""
    return to_money(Decimal(str(amount or 0)) / 100)


def to_paise(amount: Decimal) -> int:
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def mask_payment_details(details: Optional[dict]) -> dict:
    """Mask card/account numbers and UPI ids for read-back."""
    masked = dict(details or {})

    if masked.get("cardNumber"):
        masked["cardNumber"] = "****" + str(masked["cardNumber"])[-4:]
    if masked.get("accountNumber"):
        masked["accountNumber"] = "****" + str(masked["accountNumber"])[-4:]
    if masked.get("upiId"):
        parts = str(masked["upiId"]).split("@")
        if len(parts) == 2:
            masked["upiId"] = "****" + parts[0][-2:] + "@" + parts[1]

    return masked


# =============================================================================
# Plan Catalogue (Business Logic)
# =============================================================================

DEFAULT_PLANS = [
    {
        "name": "Free",
        "description": "Perfect for getting started with basic invoice management",
        "price": Decimal("0"),
        "interval": PlanInterval.MONTH,
        "interval_count": 1,
        "trial_period_days": 0,
        "features": [
            "Up to 5 invoices per month",
            "1 user account",
            "Basic templates",
            "Email support",
            "PDF export",
            "Basic customer management",
        ],
        "limits": {
            "maxInvoicesPerMonth": 5,
            "maxUsers": 1,
            "maxCustomers": 25,
            "emailSupport": True,
            "prioritySupport": False,
            "apiAccess": False,
            "customBranding": False,
            "advancedReports": False,
        },
        "is_popular": False,
        "sort_order": 1,
    },
    {
        "name": "Basic",
        "description": "Ideal for small businesses and freelancers",
        "price": Decimal("299"),
        "interval": PlanInterval.MONTH,
        "interval_count": 1,
        "trial_period_days": 7,
        "features": [
            "Up to 50 invoices per month",
            "3 user accounts",
            "Custom templates",
            "Priority email support",
            "Payment tracking",
            "Basic analytics",
            "Customer portal",
        ],
        "limits": {
            "maxInvoicesPerMonth": 50,
            "maxUsers": 3,
            "maxCustomers": 100,
            "emailSupport": True,
            "prioritySupport": True,
            "apiAccess": False,
            "customBranding": False,
            "advancedReports": False,
        },
        "is_popular": False,
        "sort_order": 2,
    },
    {
        "name": "Pro",
        "description": "Perfect for growing businesses with advanced needs",
        "price": Decimal("599"),
        "interval": PlanInterval.MONTH,
        "interval_count": 1,
        "trial_period_days": 14,
        "features": [
            "Unlimited invoices",
            "10 user accounts",
            "Advanced templates",
            "Live chat support",
            "Payment processing",
            "Advanced analytics",
            "API access",
            "White-label options",
            "Automated reminders",
            "Multi-currency support",
        ],
        "limits": {
            "maxInvoicesPerMonth": -1,  # Unlimited
            "maxUsers": 10,
            "maxCustomers": -1,
            "emailSupport": True,
            "prioritySupport": True,
            "apiAccess": True,
            "customBranding": True,
            "advancedReports": True,
        },
        "is_popular": True,
        "sort_order": 3,
    },
    {
        "name": "Enterprise",
        "description": "For large organizations with custom requirements",
        "price": Decimal("1499"),
        "interval": PlanInterval.MONTH,
        "interval_count": 1,
        "trial_period_days": 30,
        "features": [
            "Everything in Pro",
            "Unlimited users",
            "Custom integrations",
            "Dedicated support manager",
            "99.9% SLA guarantee",
            "Custom branding",
            "Multi-company support",
            "Advanced security",
            "Custom workflows",
            "Priority feature requests",
        ],
        "limits": {
            "maxInvoicesPerMonth": -1,
            "maxUsers": -1,
            "maxCustomers": -1,
            "emailSupport": True,
            "prioritySupport": True,
            "apiAccess": True,
            "customBranding": True,
            "advancedReports": True,
            "dedicatedSupport": True,
            "customIntegrations": True,
        },
        "is_popular": False,
        "sort_order": 4,
    },
]
