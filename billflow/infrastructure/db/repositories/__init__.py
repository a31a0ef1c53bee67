"""
Repository Layer for Billflow

Repositories take the caller's AsyncSession and never commit.
"""

from billflow.infrastructure.db.repositories.base_repository import BaseRepository, to_uuid
from billflow.infrastructure.db.repositories.user_repository import UserRepository
from billflow.infrastructure.db.repositories.plan_repository import PlanRepository
from billflow.infrastructure.db.repositories.subscription_repository import SubscriptionRepository
from billflow.infrastructure.db.repositories.transaction_repository import TransactionRepository
from billflow.infrastructure.db.repositories.billing_history_repository import BillingHistoryRepository
from billflow.infrastructure.db.repositories.payment_method_repository import PaymentMethodRepository


__all__ = [
    "BaseRepository",
    "to_uuid",
    "UserRepository",
    "PlanRepository",
    "SubscriptionRepository",
    "TransactionRepository",
    "BillingHistoryRepository",
    "PaymentMethodRepository",
]
