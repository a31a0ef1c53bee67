"""
Gateway Webhook Handler

Receives Razorpay webhook deliveries. The signature is checked against
the raw body before anything is parsed; a bad signature is the only
non-200 response. Processing errors are logged and the delivery is still
acknowledged.
"""

import logging

from fastapi import APIRouter, Request

from billflow.api.dependencies import WebhookReconcilerDep
from billflow.domain.schemas import WebhookAck


logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADERS = ("x-gateway-signature", "x-razorpay-signature")


@router.post("/webhooks/gateway", response_model=WebhookAck)
@router.post("/webhooks/razorpay", response_model=WebhookAck, include_in_schema=False)
async def gateway_webhook(request: Request, reconciler: WebhookReconcilerDep):
    """
    Handle gateway webhook events.

    Returns 200 to acknowledge receipt; 400 when the signature is missing
    or does not match.
    """
    body = await request.body()
    signature = next(
        (request.headers.get(name) for name in SIGNATURE_HEADERS if request.headers.get(name)),
        None,
    )

    await reconciler.handle(body, signature)
    return WebhookAck()
