"""
Dependency Injection Providers for Billflow

Provides FastAPI dependencies for database sessions and services.
Every service built for a request shares the request's session.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from billflow.infrastructure.db.database import get_session
from billflow.infrastructure.services.billing_history_service import BillingHistoryService
from billflow.infrastructure.services.payment_method_service import PaymentMethodService
from billflow.infrastructure.services.subscription_service import SubscriptionService


# Type alias for session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_subscription_service(
    session: SessionDep,
) -> AsyncGenerator[SubscriptionService, None]:
    """
    Dependency provider for SubscriptionService.

    Usage:
        @router.get("/billing/subscription")
        async def current(service: SubscriptionServiceDep):
            ...
    """
    yield SubscriptionService(session)


async def get_billing_history_service(
    session: SessionDep,
) -> AsyncGenerator[BillingHistoryService, None]:
    yield BillingHistoryService(session)


async def get_payment_method_service(
    session: SessionDep,
) -> AsyncGenerator[PaymentMethodService, None]:
    yield PaymentMethodService(session)


# Type aliases for service dependencies
SubscriptionServiceDep = Annotated[
    SubscriptionService,
    Depends(get_subscription_service)
]
BillingHistoryServiceDep = Annotated[
    BillingHistoryService,
    Depends(get_billing_history_service)
]
PaymentMethodServiceDep = Annotated[
    PaymentMethodService,
    Depends(get_payment_method_service)
]
