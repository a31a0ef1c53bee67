"""
Plan Database Model

Catalogue of purchasable plans. The free plan is the active plan priced 0.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Column, JSON, Numeric
from sqlmodel import Field

from billflow.infrastructure.db.models.base import BaseModel


class PlanModel(BaseModel, table=True):
    """Maps to the 'plans' table."""

    __tablename__ = "plans"

    name: str = Field(unique=True, index=True)
    description: Optional[str] = Field(default=None)
    price: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(12, 2), nullable=False, default=0),
    )
    currency: str = Field(default="INR")

    # Billing cycle: interval_count units of interval
    interval: str = Field(default="MONTH")
    interval_count: int = Field(default=1)
    trial_period_days: int = Field(default=0)

    features: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    limits: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    is_active: bool = Field(default=True, index=True)
    is_popular: bool = Field(default=False)
    sort_order: int = Field(default=0)

    # Plan id on the gateway side, required for recurring subscriptions
    gateway_plan_id: Optional[str] = Field(default=None)
