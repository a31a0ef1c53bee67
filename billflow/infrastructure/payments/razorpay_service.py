"""
Razorpay Payment Service

Wraps the official Razorpay SDK for orders, customers and subscriptions,
and uses its utility helpers to verify webhook deliveries and checkout
payment signatures. The SDK is synchronous, so API calls run in a worker
thread.

Without API keys the client runs in mock mode and fabricates ids, so the
checkout flow can be exercised locally.
"""

import asyncio
import logging
import secrets
import time
from decimal import Decimal
from typing import Any, Dict, Optional

import razorpay
import requests

from billflow.config.settings import get_settings
from billflow.domain.billing import to_paise
from billflow.infrastructure.exceptions import GatewayError, SignatureError


logger = logging.getLogger(__name__)


class RazorpayService:
    """
    Razorpay gateway client.

    Args:
        key_id / key_secret: API credentials (mock mode when either is empty)
        webhook_secret: Shared secret for webhook signatures
        client: Optional pre-built ``razorpay.Client``, used by tests
    """

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        settings = get_settings()
        self._key_id = key_id if key_id is not None else settings.razorpay_key_id
        self._key_secret = key_secret if key_secret is not None else settings.razorpay_key_secret
        self._webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.razorpay_webhook_secret
        )
        # The key secret also signs checkout payments, so the client exists in mock mode too
        self.client = client or razorpay.Client(auth=(self._key_id or "", self._key_secret or ""))

    @property
    def mock_mode(self) -> bool:
        return not self._key_id or not self._key_secret

    @property
    def key_id(self) -> Optional[str]:
        """Public key id handed to the checkout widget."""
        return self._key_id

    # =========================================================================
    # SDK Calls
    # =========================================================================

    async def _call(self, operation: str, method, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(method, data=data)
        except razorpay.errors.BadRequestError as e:
            logger.error(f"Razorpay {operation} rejected: {e}")
            raise GatewayError(f"Razorpay error: {e}", status_code=400, operation=operation, original_error=e)
        except (razorpay.errors.ServerError, razorpay.errors.GatewayError) as e:
            logger.error(f"Razorpay {operation} failed: {e}")
            raise GatewayError(f"Razorpay error: {e}", operation=operation, original_error=e)
        except requests.exceptions.RequestException as e:
            logger.error(f"Razorpay {operation} request failed: {e}")
            raise GatewayError("Payment gateway unavailable", operation=operation, original_error=e)

    @staticmethod
    def _mock_id(prefix: str) -> str:
        return f"{prefix}_mock_{time.time_ns() // 1_000_000}{secrets.token_hex(3)}"

    # =========================================================================
    # Customers
    # =========================================================================

    async def create_customer(self, email: str, name: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a gateway customer.

        ``fail_existing=0`` makes Razorpay return the existing customer for a
        known email instead of erroring.
        """
        if self.mock_mode:
            return {"id": self._mock_id("cust"), "email": email, "name": name}

        customer = await self._call(
            "create_customer",
            self.client.customer.create,
            {"name": name or email, "email": email, "fail_existing": "0"},
        )
        logger.info(f"Created Razorpay customer {customer.get('id')}")
        return customer

    # =========================================================================
    # Orders
    # =========================================================================

    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Create a one-time payment order.

        Args:
            amount: Amount in major units; sent to the gateway in paise
            currency: ISO currency code
            receipt: Our receipt reference
            notes: Free-form key/values echoed back in webhooks

        Returns:
            Order payload (id, amount in paise, currency, status)
        """
        payload = {
            "amount": to_paise(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        if self.mock_mode:
            return {**payload, "id": self._mock_id("order"), "status": "created"}

        order = await self._call("create_order", self.client.order.create, payload)
        logger.info(f"Created Razorpay order {order.get('id')}")
        return order

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def create_subscription(
        self,
        gateway_plan_id: str,
        total_count: int = 12,
        notes: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Create a recurring subscription against a gateway plan."""
        payload = {
            "plan_id": gateway_plan_id,
            "total_count": total_count,
            "quantity": 1,
            "notes": notes or {},
        }
        if self.mock_mode:
            return {**payload, "id": self._mock_id("sub"), "status": "created"}

        subscription = await self._call("create_subscription", self.client.subscription.create, payload)
        logger.info(f"Created Razorpay subscription {subscription.get('id')}")
        return subscription

    # =========================================================================
    # Signatures
    # =========================================================================

    def verify_webhook_signature(self, body: bytes, signature: Optional[str]) -> None:
        """
        Verify a webhook delivery against the shared webhook secret.

        Raises:
            SignatureError: secret not configured, header missing or mismatch
        """
        if not self._webhook_secret:
            logger.error("Webhook received but RAZORPAY_WEBHOOK_SECRET is not configured")
            raise SignatureError("Webhook secret not configured")
        if not signature:
            raise SignatureError("Missing webhook signature")

        try:
            self.client.utility.verify_webhook_signature(
                body.decode("utf-8"), signature, self._webhook_secret
            )
        except (razorpay.errors.SignatureVerificationError, UnicodeDecodeError) as e:
            logger.warning("Rejected webhook with invalid signature")
            raise SignatureError("Invalid webhook signature", original_error=e)

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: Optional[str]) -> None:
        """
        Verify the checkout signature: HMAC(order_id|payment_id, key_secret).

        Raises:
            SignatureError: on mismatch or when no key secret is configured
        """
        if not self._key_secret or not signature:
            raise SignatureError("Invalid payment signature")

        try:
            self.client.utility.verify_payment_signature({
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            })
        except razorpay.errors.SignatureVerificationError as e:
            logger.warning(f"Payment signature mismatch for order {order_id}")
            raise SignatureError("Invalid payment signature", original_error=e)


# =============================================================================
# Singleton Instance
# =============================================================================

_razorpay_service_instance: Optional[RazorpayService] = None


def get_razorpay_service() -> RazorpayService:
    """Get or create Razorpay service singleton."""
    global _razorpay_service_instance

    if _razorpay_service_instance is None:
        _razorpay_service_instance = RazorpayService()

    return _razorpay_service_instance
