"""
SQLModel ORM Models for Billflow

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from billflow.infrastructure.db.models.base import (
    BaseModel,
    TimestampMixin,
    UUIDMixin,
)
from billflow.infrastructure.db.models.plan import PlanModel
from billflow.infrastructure.db.models.user import UserModel
from billflow.infrastructure.db.models.payment_method import PaymentMethodModel
from billflow.infrastructure.db.models.subscription import SubscriptionModel
from billflow.infrastructure.db.models.transaction import TransactionModel
from billflow.infrastructure.db.models.billing_history import BillingHistoryModel


__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    # Billing
    "PlanModel",
    "UserModel",
    "PaymentMethodModel",
    "SubscriptionModel",
    "TransactionModel",
    "BillingHistoryModel",
]
