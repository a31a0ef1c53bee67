"""
User Database Model

Billing projection of the user account. Identity and credentials live in
the auth service; this table only carries what billing reads and writes.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Column, Numeric
from sqlmodel import Field

from billflow.infrastructure.db.models.base import BaseModel, UTCDateTime


class UserModel(BaseModel, table=True):
    """Maps to the 'users' table."""

    __tablename__ = "users"

    email: str = Field(unique=True, index=True)
    name: Optional[str] = Field(default=None)

    # Non-negative; only ever changed by an atomic increment
    wallet_balance: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(12, 2), nullable=False, default=0),
    )

    plan_id: Optional[UUID] = Field(default=None, foreign_key="plans.id")
    subscription_status: Optional[str] = Field(default=None)
    subscription_start_date: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    subscription_end_date: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    next_billing_date: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    trial_ends_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)

    # Invoices created in the current billing period
    invoice_usage: int = Field(default=0)

    gateway_customer_id: Optional[str] = Field(default=None, index=True)
