"""
Unit tests for the Razorpay client.

Signature checks run through the real SDK utility; API calls go to a
recording stand-in for the SDK resources.
"""

import hashlib
import hmac
from decimal import Decimal
from types import SimpleNamespace

import pytest
import razorpay
import requests

from billflow.infrastructure.exceptions import GatewayError, SignatureError
from billflow.infrastructure.payments.razorpay_service import RazorpayService


def sign(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class RecordingResource:
    """Stands in for an SDK resource (client.order, client.customer, ...)."""

    def __init__(self, response=None, error=None):
        self.response = response or {}
        self.error = error
        self.calls = []

    def create(self, data=None, **kwargs):
        self.calls.append(data)
        if self.error is not None:
            raise self.error
        return self.response


def fake_client(**resources) -> SimpleNamespace:
    defaults = {name: RecordingResource() for name in ("order", "customer", "subscription")}
    return SimpleNamespace(**{**defaults, **resources})


class TestWebhookSignature:

    @pytest.fixture
    def service(self):
        return RazorpayService(key_id="", key_secret="", webhook_secret="whsec")

    def test_valid_signature_passes(self, service):
        body = b'{"event":"payment.captured"}'
        service.verify_webhook_signature(body, sign("whsec", body))

    def test_tampered_body_rejected(self, service):
        signature = sign("whsec", b'{"amount":100}')
        with pytest.raises(SignatureError, match="Invalid webhook signature"):
            service.verify_webhook_signature(b'{"amount":900}', signature)

    def test_non_utf8_body_rejected(self, service):
        body = b"\xff\xfe"
        with pytest.raises(SignatureError, match="Invalid webhook signature"):
            service.verify_webhook_signature(body, sign("whsec", body))

    def test_missing_signature_rejected(self, service):
        with pytest.raises(SignatureError, match="Missing webhook signature"):
            service.verify_webhook_signature(b"{}", None)

    def test_unconfigured_secret_rejects_everything(self):
        service = RazorpayService(key_id="", key_secret="", webhook_secret="")
        with pytest.raises(SignatureError, match="not configured"):
            service.verify_webhook_signature(b"{}", sign("", b"{}"))


class TestPaymentSignature:

    def test_order_payment_signature(self):
        service = RazorpayService(key_id="rzp_test", key_secret="keysecret", webhook_secret="x")
        signature = sign("keysecret", b"order_1|pay_1")
        service.verify_payment_signature("order_1", "pay_1", signature)

        with pytest.raises(SignatureError, match="Invalid payment signature"):
            service.verify_payment_signature("order_1", "pay_2", signature)

    def test_mock_mode_still_verifies_with_key_secret(self):
        service = RazorpayService(key_id="", key_secret="keysecret", webhook_secret="x")
        assert service.mock_mode is True
        service.verify_payment_signature("order_1", "pay_1", sign("keysecret", b"order_1|pay_1"))

    def test_no_key_secret_rejects(self):
        service = RazorpayService(key_id="", key_secret="", webhook_secret="x")
        with pytest.raises(SignatureError):
            service.verify_payment_signature("order_1", "pay_1", "anything")


class TestMockMode:

    @pytest.fixture
    def service(self):
        return RazorpayService(key_id="", key_secret="", webhook_secret="x", client=fake_client())

    async def test_mock_order(self, service):
        assert service.mock_mode is True
        order = await service.create_order(Decimal("299"), "INR", "TXN-1")
        assert order["id"].startswith("order_mock_")
        assert order["amount"] == 29900
        assert order["receipt"] == "TXN-1"
        assert service.client.order.calls == []

    async def test_mock_customer_and_subscription(self, service):
        customer = await service.create_customer("asha@example.com", "Asha")
        subscription = await service.create_subscription("plan_abc")
        assert customer["id"].startswith("cust_mock_")
        assert subscription["id"].startswith("sub_mock_")
        assert subscription["plan_id"] == "plan_abc"


class TestSdkCalls:

    def _service(self, **resources) -> RazorpayService:
        return RazorpayService(
            key_id="rzp_test_key",
            key_secret="rzp_secret",
            webhook_secret="x",
            client=fake_client(**resources),
        )

    def test_default_client_is_the_sdk(self):
        service = RazorpayService(key_id="rzp_test_key", key_secret="rzp_secret", webhook_secret="x")
        assert isinstance(service.client, razorpay.Client)

    async def test_create_order_sends_amount_in_paise(self):
        orders = RecordingResource(response={"id": "order_live_1", "amount": 59900, "currency": "INR"})

        order = await self._service(order=orders).create_order(
            Decimal("599"), "INR", "TXN-9", notes={"plan_id": "p"}
        )

        assert order["id"] == "order_live_1"
        assert orders.calls == [{
            "amount": 59900,
            "currency": "INR",
            "receipt": "TXN-9",
            "notes": {"plan_id": "p"},
        }]

    async def test_create_customer_reuses_existing(self):
        customers = RecordingResource(response={"id": "cust_live_1"})

        customer = await self._service(customer=customers).create_customer("asha@example.com")

        assert customer["id"] == "cust_live_1"
        assert customers.calls[0]["fail_existing"] == "0"
        assert customers.calls[0]["name"] == "asha@example.com"

    async def test_create_subscription_payload(self):
        subscriptions = RecordingResource(response={"id": "sub_live_1", "status": "created"})

        await self._service(subscription=subscriptions).create_subscription("plan_abc", notes={"user_id": "u"})

        assert subscriptions.calls == [{
            "plan_id": "plan_abc",
            "total_count": 12,
            "quantity": 1,
            "notes": {"user_id": "u"},
        }]

    async def test_bad_request_raises_gateway_error(self):
        orders = RecordingResource(error=razorpay.errors.BadRequestError("The amount must be atleast INR 1.00"))

        with pytest.raises(GatewayError) as exc_info:
            await self._service(order=orders).create_order(Decimal("0.5"), "INR", "TXN-1")

        assert "amount must be atleast" in exc_info.value.message
        assert exc_info.value.details["status_code"] == 400
        assert exc_info.value.details["operation"] == "create_order"

    async def test_server_error_raises_gateway_error(self):
        subscriptions = RecordingResource(error=razorpay.errors.ServerError("upstream failure"))

        with pytest.raises(GatewayError) as exc_info:
            await self._service(subscription=subscriptions).create_subscription("plan_abc")

        assert exc_info.value.details == {"operation": "create_subscription"}

    async def test_connection_error_raises_gateway_error(self):
        customers = RecordingResource(error=requests.exceptions.ConnectionError("connection refused"))

        with pytest.raises(GatewayError, match="Payment gateway unavailable"):
            await self._service(customer=customers).create_customer("asha@example.com")
