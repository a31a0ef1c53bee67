"""
API Dependencies

FastAPI dependency injection for authentication and gateway services.

Security: tokens are HS256 JWTs issued by the auth service and verified
with JWT_SECRET. They arrive as a Bearer header or in the auth cookie.
Never decode without verification.
"""

import logging
from typing import Annotated, Optional
from uuid import UUID

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from billflow.config.settings import get_settings
from billflow.infrastructure.db.dependencies import SessionDep
from billflow.infrastructure.exceptions import AuthError
from billflow.infrastructure.payments.gateway import PaymentGateway, SimulatedGateway
from billflow.infrastructure.payments.razorpay_service import RazorpayService, get_razorpay_service
from billflow.infrastructure.services.checkout_service import CheckoutService
from billflow.infrastructure.services.payment_processor import PaymentProcessor
from billflow.infrastructure.services.webhook_reconciler import WebhookReconciler


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _decode_token(token: str, secret: str, algorithm: str) -> dict:
    """Verify signature and expiry (when present)."""
    return jwt.decode(token, secret, algorithms=[algorithm])


async def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> UUID:
    """
    Extract and verify the caller's user id.

    Returns:
        User id from the ``sub`` claim (``userId`` also accepted)

    Raises:
        AuthError: token missing, expired, invalid or without a user id
    """
    settings = get_settings()

    token = credentials.credentials if credentials else request.cookies.get(settings.auth_cookie_name)
    if not token:
        raise AuthError()

    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not configured; rejecting authenticated request")
        raise AuthError()

    try:
        payload = _decode_token(token, settings.jwt_secret, settings.jwt_algorithm)
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        raise AuthError()
    except jwt.InvalidTokenError as e:
        logger.warning("JWT verification failed: %s", e)
        raise AuthError()

    raw_user_id = payload.get("sub") or payload.get("userId")
    try:
        return UUID(str(raw_user_id))
    except (ValueError, TypeError):
        logger.warning("Token carries no usable user id")
        raise AuthError()


CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]


# =============================================================================
# Gateway Dependencies
# =============================================================================

def get_payment_gateway() -> PaymentGateway:
    """Charge backend for process-payment. Overridden in tests."""
    return SimulatedGateway(delay_seconds=get_settings().simulated_gateway_delay_seconds)


def get_razorpay() -> RazorpayService:
    return get_razorpay_service()


async def get_payment_processor(
    session: SessionDep,
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> PaymentProcessor:
    return PaymentProcessor(session, gateway)


async def get_checkout_service(
    session: SessionDep,
    razorpay: RazorpayService = Depends(get_razorpay),
) -> CheckoutService:
    return CheckoutService(session, razorpay)


def get_webhook_reconciler(
    razorpay: RazorpayService = Depends(get_razorpay),
) -> WebhookReconciler:
    return WebhookReconciler(razorpay)


PaymentProcessorDep = Annotated[PaymentProcessor, Depends(get_payment_processor)]
CheckoutServiceDep = Annotated[CheckoutService, Depends(get_checkout_service)]
WebhookReconcilerDep = Annotated[WebhookReconciler, Depends(get_webhook_reconciler)]


# =============================================================================
# Re-export DB dependencies for a single import source
# Routers should import from api.dependencies, not db.dependencies directly.
# =============================================================================
from billflow.infrastructure.db.dependencies import (  # noqa: E402, F401
    SubscriptionServiceDep,
    BillingHistoryServiceDep,
    PaymentMethodServiceDep,
)
