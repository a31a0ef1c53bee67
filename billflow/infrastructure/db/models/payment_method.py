"""
Payment Method Database Model

Saved payment instruments. Rows are soft-deleted via is_active.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import Column, JSON
from sqlmodel import Field

from billflow.infrastructure.db.models.base import BaseModel, UTCDateTime


class PaymentMethodModel(BaseModel, table=True):
    """Maps to the 'payment_methods' table."""

    __tablename__ = "payment_methods"

    user_id: UUID = Field(foreign_key="users.id", index=True)
    type: str
    name: str
    details: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    is_default: bool = Field(default=False)
    is_active: bool = Field(default=True)
    expiry_date: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    last_used: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
