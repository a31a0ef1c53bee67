"""
Integration tests for POST/GET /api/billing/process-payment.

Verifies:
- Wallet top-up credits the wallet exactly once
- Declines are data: FAILED row, 400, success false
- Subscription payments activate the subscription and write one history row
- Validation and ownership failures never create a transaction row
- Errors after the row exists force it to FAILED
"""

from decimal import Decimal
from uuid import uuid4

from billflow.domain.billing import compute_period_end
from billflow.infrastructure.db.models import (
    BillingHistoryModel,
    PaymentMethodModel,
    SubscriptionModel,
    TransactionModel,
    UserModel,
)


URL = "/api/billing/process-payment"


class TestWalletTopUp:

    async def test_top_up_success(self, async_client, gateway, store, user, upi_method, auth_headers):
        gateway.succeed("UPI1700000000000QWERTY")

        response = await async_client.post(
            URL,
            json={
                "amount": 500,
                "paymentMethodId": str(upi_method.id),
                "type": "WALLET_TOPUP",
                "description": "Wallet top-up",
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Payment processed successfully"
        transaction = body["transaction"]
        assert transaction["status"] == "SUCCESS"
        assert transaction["amount"] == 500
        assert transaction["currency"] == "INR"
        assert transaction["paymentMethod"] == "UPI"
        assert transaction["reference"].startswith("TXN-")
        assert transaction["processedAt"] is not None
        assert transaction["metadata"]["external_transaction_id"] == "UPI1700000000000QWERTY"
        assert transaction["metadata"]["payment_method_id"] == str(upi_method.id)

        refreshed = await store.get(UserModel, user.id)
        assert refreshed.wallet_balance == Decimal("500.00")

        method = await store.get(PaymentMethodModel, upi_method.id)
        assert method.last_used is not None

    async def test_top_ups_accumulate(self, async_client, store, user, upi_method, auth_headers):
        for amount in (100, 250):
            response = await async_client.post(
                URL,
                json={"amount": amount, "paymentMethodId": str(upi_method.id), "type": "WALLET_TOPUP"},
                headers=auth_headers,
            )
            assert response.status_code == 200

        refreshed = await store.get(UserModel, user.id)
        assert refreshed.wallet_balance == Decimal("350.00")

    async def test_decline_returns_400_with_failed_transaction(
        self, async_client, gateway, store, user, upi_method, auth_headers
    ):
        gateway.decline("UPI transaction declined by bank")

        response = await async_client.post(
            URL,
            json={"amount": 500, "paymentMethodId": str(upi_method.id), "type": "WALLET_TOPUP"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Payment failed: UPI transaction declined by bank"
        assert body["transaction"]["status"] == "FAILED"
        assert body["transaction"]["failureReason"] == "UPI transaction declined by bank"

        refreshed = await store.get(UserModel, user.id)
        assert refreshed.wallet_balance == Decimal("0.00")


class TestSubscriptionPayment:

    async def test_payment_activates_incomplete_subscription(
        self, async_client, store, plans, user, card_method, auth_headers
    ):
        starter = plans["Starter"]
        change = await async_client.post(
            "/api/billing/subscription",
            json={"planId": str(starter.id)},
            headers=auth_headers,
        )
        assert change.status_code == 200
        assert change.json()["requiresPayment"] is True
        subscription_id = change.json()["subscription"]["id"]
        assert change.json()["subscription"]["status"] == "INCOMPLETE"

        response = await async_client.post(
            URL,
            json={
                "amount": 199,
                "paymentMethodId": str(card_method.id),
                "type": "SUBSCRIPTION_PAYMENT",
                "subscriptionId": subscription_id,
            },
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["transaction"]["metadata"]["subscription_id"] == subscription_id

        current = await async_client.get("/api/billing/subscription", headers=auth_headers)
        body = current.json()
        assert body["subscription"]["id"] == subscription_id
        assert body["subscription"]["status"] == "ACTIVE"
        assert body["subscription"]["plan"]["name"] == "Starter"
        assert body["user"]["planId"] == str(starter.id)
        assert body["user"]["subscriptionStatus"] == "ACTIVE"
        assert body["user"]["nextBillingDate"] is not None
        assert body["user"]["invoiceUsage"] == 0

        history = await store.list(BillingHistoryModel, BillingHistoryModel.user_id == user.id)
        assert len(history) == 1
        assert history[0].billing_reason == "subscription_payment"
        assert history[0].invoice_number.startswith("PAY-")
        assert history[0].amount == Decimal("199.00")
        assert history[0].plan_name == "Starter"

    async def test_activated_period_matches_plan_interval(
        self, async_client, store, plans, user, card_method, auth_headers
    ):
        subscription = await store.add(
            SubscriptionModel(user_id=user.id, plan_id=plans["Starter"].id, status="INCOMPLETE", meta={})
        )

        response = await async_client.post(
            URL,
            json={
                "amount": 199,
                "paymentMethodId": str(card_method.id),
                "type": "SUBSCRIPTION_PAYMENT",
                "subscriptionId": str(subscription.id),
            },
            headers=auth_headers,
        )
        assert response.status_code == 200

        activated = (await store.list(SubscriptionModel, SubscriptionModel.id == subscription.id))[0]
        assert activated.status == "ACTIVE"
        assert activated.current_period_end == compute_period_end(activated.current_period_start, "MONTH", 1)

    async def test_activation_cancels_previous_live_subscription(
        self, async_client, store, plans, user, card_method, auth_headers
    ):
        trial = await store.add(
            SubscriptionModel(user_id=user.id, plan_id=plans["Basic"].id, status="TRIAL", meta={})
        )
        pending = await store.add(
            SubscriptionModel(user_id=user.id, plan_id=plans["Starter"].id, status="INCOMPLETE", meta={})
        )

        response = await async_client.post(
            URL,
            json={
                "amount": 199,
                "paymentMethodId": str(card_method.id),
                "type": "SUBSCRIPTION_PAYMENT",
                "subscriptionId": str(pending.id),
            },
            headers=auth_headers,
        )
        assert response.status_code == 200

        rows = {row.id: row for row in await store.list(SubscriptionModel, SubscriptionModel.user_id == user.id)}
        assert rows[trial.id].status == "CANCELED"
        assert rows[pending.id].status == "ACTIVE"

    async def test_declined_payment_leaves_subscription_untouched(
        self, async_client, gateway, store, plans, user, card_method, auth_headers
    ):
        subscription = await store.add(
            SubscriptionModel(user_id=user.id, plan_id=plans["Pro"].id, status="INCOMPLETE", meta={})
        )
        gateway.decline("Insufficient funds or card declined")

        response = await async_client.post(
            URL,
            json={
                "amount": 299,
                "paymentMethodId": str(card_method.id),
                "type": "SUBSCRIPTION_PAYMENT",
                "subscriptionId": str(subscription.id),
            },
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["transaction"]["failureReason"] == "Insufficient funds or card declined"

        rows = await store.list(SubscriptionModel, SubscriptionModel.id == subscription.id)
        assert rows[0].status == "INCOMPLETE"
        assert await store.list(BillingHistoryModel) == []

    async def test_canceled_subscription_rejected_before_any_write(
        self, async_client, gateway, store, plans, user, card_method, auth_headers
    ):
        subscription = await store.add(
            SubscriptionModel(user_id=user.id, plan_id=plans["Pro"].id, status="CANCELED", meta={})
        )

        response = await async_client.post(
            URL,
            json={
                "amount": 599,
                "paymentMethodId": str(card_method.id),
                "type": "SUBSCRIPTION_PAYMENT",
                "subscriptionId": str(subscription.id),
            },
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Subscription is canceled"
        assert gateway.calls == []
        assert await store.list(TransactionModel) == []

    async def test_foreign_subscription_is_not_found(
        self, async_client, store, plans, other_user, user, card_method, auth_headers
    ):
        foreign = await store.add(
            SubscriptionModel(user_id=other_user.id, plan_id=plans["Pro"].id, status="INCOMPLETE", meta={})
        )

        response = await async_client.post(
            URL,
            json={
                "amount": 599,
                "paymentMethodId": str(card_method.id),
                "type": "SUBSCRIPTION_PAYMENT",
                "subscriptionId": str(foreign.id),
            },
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert await store.list(TransactionModel) == []


class TestValidation:

    async def test_unknown_payment_method_is_404_without_transaction(
        self, async_client, gateway, store, user, auth_headers
    ):
        response = await async_client.post(
            URL,
            json={"amount": 100, "paymentMethodId": str(uuid4()), "type": "WALLET_TOPUP"},
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"
        assert gateway.calls == []
        assert await store.list(TransactionModel) == []

    async def test_foreign_payment_method_is_404(
        self, async_client, store, other_user, upi_method, other_auth_headers
    ):
        response = await async_client.post(
            URL,
            json={"amount": 100, "paymentMethodId": str(upi_method.id), "type": "WALLET_TOPUP"},
            headers=other_auth_headers,
        )

        assert response.status_code == 404
        assert await store.list(TransactionModel) == []

    async def test_inactive_payment_method_is_404(self, async_client, store, user, auth_headers):
        method = await store.add(
            PaymentMethodModel(user_id=user.id, type="UPI", name="Old UPI", details={}, is_active=False)
        )

        response = await async_client.post(
            URL,
            json={"amount": 100, "paymentMethodId": str(method.id), "type": "WALLET_TOPUP"},
            headers=auth_headers,
        )
        assert response.status_code == 404

    async def test_non_positive_amount_is_400(self, async_client, store, upi_method, auth_headers):
        response = await async_client.post(
            URL,
            json={"amount": 0, "paymentMethodId": str(upi_method.id), "type": "WALLET_TOPUP"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"
        assert await store.list(TransactionModel) == []

    async def test_unknown_type_is_400(self, async_client, upi_method, auth_headers):
        response = await async_client.post(
            URL,
            json={"amount": 10, "paymentMethodId": str(upi_method.id), "type": "REFUND"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    async def test_requires_authentication(self, async_client, upi_method):
        response = await async_client.post(
            URL,
            json={"amount": 10, "paymentMethodId": str(upi_method.id), "type": "WALLET_TOPUP"},
        )
        assert response.status_code == 401


class TestProcessingErrors:

    async def test_gateway_exception_forces_failed(self, async_client, gateway, store, user, upi_method, auth_headers):
        gateway.error = RuntimeError("gateway exploded")

        response = await async_client.post(
            URL,
            json={"amount": 100, "paymentMethodId": str(upi_method.id), "type": "WALLET_TOPUP"},
            headers=auth_headers,
        )

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to process payment"

        transactions = await store.list(TransactionModel)
        assert len(transactions) == 1
        assert transactions[0].status == "FAILED"
        assert transactions[0].failure_reason == "Payment processing error"

        refreshed = await store.get(UserModel, user.id)
        assert refreshed.wallet_balance == Decimal("0.00")


class TestTransactionStatus:

    async def test_lookup_by_id_and_reference(self, async_client, user, upi_method, auth_headers):
        created = await async_client.post(
            URL,
            json={"amount": 75, "paymentMethodId": str(upi_method.id), "type": "WALLET_TOPUP"},
            headers=auth_headers,
        )
        transaction = created.json()["transaction"]

        by_id = await async_client.get(URL, params={"transactionId": transaction["id"]}, headers=auth_headers)
        by_reference = await async_client.get(URL, params={"reference": transaction["reference"]}, headers=auth_headers)

        assert by_id.status_code == 200
        assert by_id.json()["transaction"]["id"] == transaction["id"]
        assert by_reference.json()["transaction"]["status"] == "SUCCESS"

    async def test_missing_keys_is_400(self, async_client, user, auth_headers):
        response = await async_client.get(URL, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Transaction ID or reference is required"

    async def test_unknown_or_foreign_is_404(self, async_client, user, upi_method, auth_headers, other_auth_headers):
        created = await async_client.post(
            URL,
            json={"amount": 75, "paymentMethodId": str(upi_method.id), "type": "WALLET_TOPUP"},
            headers=auth_headers,
        )
        transaction_id = created.json()["transaction"]["id"]

        foreign = await async_client.get(URL, params={"transactionId": transaction_id}, headers=other_auth_headers)
        unknown = await async_client.get(URL, params={"transactionId": str(uuid4())}, headers=auth_headers)
        malformed = await async_client.get(URL, params={"transactionId": "nope"}, headers=auth_headers)

        assert foreign.status_code == 404
        assert unknown.status_code == 404
        assert malformed.status_code == 404
