"""
Transaction Database Model

The ledger: one row per money-movement attempt.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Column, JSON, Numeric
from sqlmodel import Field

from billflow.infrastructure.db.models.base import BaseModel, UTCDateTime


class TransactionModel(BaseModel, table=True):
    """
    Maps to the 'transactions' table.

    status moves PROCESSING -> SUCCESS | FAILED exactly once.
    """

    __tablename__ = "transactions"

    # TXN-... for local payments, the gateway order id for checkout orders
    reference: str = Field(unique=True, index=True)

    user_id: UUID = Field(foreign_key="users.id", index=True)
    type: str
    amount: Decimal = Field(sa_column=Column(Numeric(12, 2), nullable=False))
    currency: str = Field(default="INR")
    status: str = Field(default="PROCESSING", index=True)

    payment_method: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    failure_reason: Optional[str] = Field(default=None)
    processed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)

    meta: dict = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSON, key="meta", nullable=False),
    )
