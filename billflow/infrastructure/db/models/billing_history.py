"""
Billing History Database Model

Append-only audit trail of completed billing events.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Column, JSON, Numeric
from sqlmodel import Field

from billflow.infrastructure.db.models.base import BaseModel, UTCDateTime


class BillingHistoryModel(BaseModel, table=True):
    """
    Maps to the 'billing_history' table.

    The unique transaction_id and external_payment_id columns are what make
    a charge observed twice produce a single row.
    """

    __tablename__ = "billing_history"

    user_id: UUID = Field(foreign_key="users.id", index=True)
    subscription_id: Optional[UUID] = Field(default=None, foreign_key="subscriptions.id", index=True)
    transaction_id: Optional[UUID] = Field(default=None, foreign_key="transactions.id", unique=True)
    external_payment_id: Optional[str] = Field(default=None, unique=True)

    amount: Decimal = Field(sa_column=Column(Numeric(12, 2), nullable=False))
    currency: str = Field(default="INR")
    status: str = Field(default="PAID")
    plan_name: Optional[str] = Field(default=None)
    billing_reason: str
    description: Optional[str] = Field(default=None)

    period_start: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    period_end: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    paid_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)

    invoice_number: str = Field(unique=True, index=True)
    payment_method: Optional[str] = Field(default=None)

    meta: dict = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSON, key="meta", nullable=False),
    )
