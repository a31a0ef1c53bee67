"""
Subscription Database Model

SQLModel table for subscription data persistence.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import Column, JSON
from sqlmodel import Field

from billflow.infrastructure.db.models.base import BaseModel, UTCDateTime


class SubscriptionModel(BaseModel, table=True):
    """
    Subscription table.

    A user holds many subscriptions over time but at most one TRIAL/ACTIVE
    row. CANCELED rows are never reactivated.
    """

    __tablename__ = "subscriptions"

    user_id: UUID = Field(foreign_key="users.id", index=True)
    plan_id: UUID = Field(foreign_key="plans.id")

    status: str = Field(default="INCOMPLETE", index=True)

    # Billing period dates
    current_period_start: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    current_period_end: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    trial_start: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    trial_end: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    canceled_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    auto_renew: bool = Field(default=True)

    # Gateway subscription id (sub_...), the correlation key for webhooks
    external_id: Optional[str] = Field(default=None, unique=True, index=True)

    meta: dict = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSON, key="meta", nullable=False),
    )
