"""
Gateway Webhook Reconciler

Applies Razorpay webhook events to the ledger and the subscription state
machine. Deliveries may be duplicated, reordered, or race the synchronous
payment path; every handler is written so that replaying an event leaves
the store unchanged.

Critical Events:
- payment.captured: settle the order's transaction as SUCCESS
- payment.failed: settle the order's transaction as FAILED
- subscription.activated: activate the local subscription
- subscription.charged: record the renewal and roll the period forward
- subscription.cancelled / subscription.completed: cancel, demote to free
- subscription.updated: record the gateway status
"""

import json
import logging
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from billflow.domain.billing import (
    GATEWAY_PAYMENT_METHOD,
    BillingReason,
    BillingStatus,
    SubscriptionStatus,
    TransactionStatus,
    compute_period_end,
    from_paise,
    generate_invoice_number,
    utcnow,
)
from billflow.infrastructure.db.database import get_session_context
from billflow.infrastructure.db.models.billing_history import BillingHistoryModel
from billflow.infrastructure.db.models.plan import PlanModel
from billflow.infrastructure.db.models.subscription import SubscriptionModel
from billflow.infrastructure.db.repositories import (
    BillingHistoryRepository,
    SubscriptionRepository,
    TransactionRepository,
    UserRepository,
)
from billflow.infrastructure.payments.razorpay_service import RazorpayService
from billflow.infrastructure.services.ledger_service import LedgerService
from billflow.infrastructure.services.subscription_service import SubscriptionService


logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _entity(payload: Dict[str, Any], name: str) -> Dict[str, Any]:
    """payload.<name>.entity, or {} when absent."""
    wrapper = payload.get(name) or {}
    entity = wrapper.get("entity") if isinstance(wrapper, dict) else None
    return entity if isinstance(entity, dict) else {}


def _timestamp(value: Any) -> Optional[datetime]:
    """Gateway epoch seconds as an aware UTC datetime; None when absent."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _gateway_window(entity: Dict[str, Any]) -> Optional[Tuple[datetime, datetime]]:
    """The subscription entity's current_start..current_end, if it carries one."""
    start = _timestamp(entity.get("current_start"))
    end = _timestamp(entity.get("current_end"))
    if start is None or end is None or end <= start:
        return None
    return start, end


def _charge_window(
    subscription: SubscriptionModel,
    plan: PlanModel,
    charged_at: datetime,
) -> Tuple[datetime, datetime]:
    """
    Billing cycle a charge pays for when the gateway sends no window.

    A charge inside the running period pays for that period, so the first
    charge of a subscription never moves it. A charge at or after the end
    pays for the next cycle; one that lands later than that starts a fresh
    cycle at the charge time.
    """
    start, end = subscription.current_period_start, subscription.current_period_end
    if subscription.status == SubscriptionStatus.ACTIVE.value and start and end:
        if charged_at < end:
            return start, end
        next_end = compute_period_end(end, plan.interval, plan.interval_count)
        if charged_at < next_end:
            return end, next_end
    return charged_at, compute_period_end(charged_at, plan.interval, plan.interval_count)


class WebhookReconciler:
    """
    Verifies and dispatches gateway webhook deliveries.

    Args:
        razorpay: Client holding the webhook secret
        session_factory: Opens one unit of work per event
    """

    def __init__(
        self,
        razorpay: RazorpayService,
        session_factory: SessionFactory = get_session_context,
    ):
        self._razorpay = razorpay
        self._session_factory = session_factory

    async def handle(self, body: bytes, signature: Optional[str]) -> None:
        """
        Verify the delivery, then apply it.

        Raises:
            SignatureError: signature missing or invalid (body not parsed)
        """
        self._razorpay.verify_webhook_signature(body, signature)

        try:
            event = json.loads(body)
        except (ValueError, UnicodeDecodeError) as e:
            logger.error(f"Unparsable webhook body: {e}")
            return
        if not isinstance(event, dict):
            logger.error("Webhook body is not a JSON object")
            return

        event_type = event.get("event")
        payload = event.get("payload") or {}
        logger.info(f"Processing webhook event: {event_type}")

        try:
            async with self._session_factory() as session:
                await self._dispatch(session, event_type, payload)
        except Exception:
            # Delivery is still acknowledged
            logger.exception(f"Error processing webhook event {event_type}")

    async def _dispatch(self, session: AsyncSession, event_type: Optional[str], payload: Dict[str, Any]) -> None:
        if event_type == "payment.captured":
            await self._on_payment_captured(session, payload)

        elif event_type == "payment.failed":
            await self._on_payment_failed(session, payload)

        elif event_type == "subscription.activated":
            await self._on_subscription_activated(session, payload)

        elif event_type in ("subscription.cancelled", "subscription.completed"):
            await self._on_subscription_ended(session, payload, event_type)

        elif event_type == "subscription.charged":
            await self._on_subscription_charged(session, payload)

        elif event_type == "subscription.updated":
            await self._on_subscription_updated(session, payload)

        else:
            logger.info(f"Unhandled webhook event type: {event_type}")

    # =========================================================================
    # Payment Events
    # =========================================================================

    async def _on_payment_captured(self, session: AsyncSession, payload: Dict[str, Any]) -> None:
        payment = _entity(payload, "payment")
        order_id = payment.get("order_id")
        if not order_id:
            logger.warning("payment.captured without order_id")
            return

        transactions = TransactionRepository(session)
        transaction = await transactions.get_by_reference(order_id)
        if transaction is None:
            logger.warning(f"payment.captured for unknown order {order_id}")
            return

        patch = {
            "webhook_payment_id": payment.get("id"),
            "webhook_captured_at": utcnow().isoformat(),
        }

        if transaction.status == TransactionStatus.SUCCESS.value:
            logger.info(f"Transaction {order_id} already SUCCESS; capture ignored")
            return
        if transaction.status == TransactionStatus.FAILED.value:
            await transactions.merge_metadata(transaction.id, patch)
            logger.warning(f"Capture received for FAILED transaction {order_id}; status kept")
            return

        await LedgerService(session).settle(transaction, success=True, metadata_patch=patch)

    async def _on_payment_failed(self, session: AsyncSession, payload: Dict[str, Any]) -> None:
        payment = _entity(payload, "payment")
        order_id = payment.get("order_id")
        if not order_id:
            logger.warning("payment.failed without order_id")
            return

        transaction = await TransactionRepository(session).get_by_reference(order_id)
        if transaction is None:
            logger.warning(f"payment.failed for unknown order {order_id}")
            return
        if transaction.status != TransactionStatus.PROCESSING.value:
            logger.info(f"Transaction {order_id} already {transaction.status}; failure ignored")
            return

        reason = payment.get("error_description") or payment.get("error_reason") or "Payment failed"
        await LedgerService(session).settle(
            transaction,
            success=False,
            failure_reason=reason,
            metadata_patch={
                "webhook_payment_id": payment.get("id"),
                "webhook_failed_at": utcnow().isoformat(),
                "error_reason": payment.get("error_reason"),
            },
        )

    # =========================================================================
    # Subscription Events
    # =========================================================================

    async def _on_subscription_activated(self, session: AsyncSession, payload: Dict[str, Any]) -> None:
        entity = _entity(payload, "subscription")
        external_id = entity.get("id")
        found = await SubscriptionRepository(session).get_with_plan_by_external_id(external_id) if external_id else None
        if found is None:
            logger.warning(f"subscription.activated for unknown subscription {external_id}")
            return

        subscription, plan = found
        now = utcnow()
        patch = {
            "gateway_status": entity.get("status"),
            "activated_at": now.isoformat(),
        }

        if subscription.status == SubscriptionStatus.CANCELED.value:
            logger.info(f"Subscription {external_id} is canceled; activation ignored")
            return
        if subscription.status == SubscriptionStatus.ACTIVE.value:
            await SubscriptionRepository(session).merge_metadata(subscription.id, patch)
            return

        await SubscriptionService(session).activate(
            subscription.id,
            plan,
            now,
            metadata_patch=patch,
            period=_gateway_window(entity),
        )

    async def _on_subscription_ended(
        self,
        session: AsyncSession,
        payload: Dict[str, Any],
        event_type: str,
    ) -> None:
        entity = _entity(payload, "subscription")
        external_id = entity.get("id")
        subscriptions = SubscriptionRepository(session)
        subscription = await subscriptions.get_by_external_id(external_id) if external_id else None
        if subscription is None:
            logger.warning(f"{event_type} for unknown subscription {external_id}")
            return

        now = utcnow()
        current = await subscriptions.lock(subscription.id)
        meta = {
            **(current.meta or {}),
            "gateway_status": entity.get("status"),
            "ended_by": event_type,
            "ended_at": now.isoformat(),
        }
        changed = await subscriptions.cancel(
            subscription.id,
            now,
            auto_renew=False,
            meta=meta,
            updated_at=now,
        )
        if not changed:
            logger.info(f"Subscription {external_id} already canceled")

        await SubscriptionService(session).demote_to_free(subscription.user_id, now)

    async def _on_subscription_charged(self, session: AsyncSession, payload: Dict[str, Any]) -> None:
        payment = _entity(payload, "payment")
        subscription_entity = _entity(payload, "subscription")
        external_id = payment.get("subscription_id") or subscription_entity.get("id")
        payment_id = payment.get("id")
        if not external_id or not payment_id:
            logger.warning("subscription.charged without subscription or payment id")
            return

        subscriptions = SubscriptionRepository(session)
        found = await subscriptions.get_with_plan_by_external_id(external_id)
        if found is None:
            logger.warning(f"subscription.charged for unknown subscription {external_id}")
            return

        subscription, plan = found
        now = utcnow()
        charged_at = _timestamp(payment.get("created_at")) or now
        window = _gateway_window(subscription_entity) or _charge_window(subscription, plan, charged_at)
        period_start, period_end = window
        amount = from_paise(payment["amount"]) if payment.get("amount") is not None else plan.price

        stored = await BillingHistoryRepository(session).append(
            BillingHistoryModel(
                user_id=subscription.user_id,
                subscription_id=subscription.id,
                external_payment_id=payment_id,
                amount=amount,
                currency=(payment.get("currency") or plan.currency).upper(),
                status=BillingStatus.PAID.value,
                plan_name=plan.name,
                billing_reason=BillingReason.SUBSCRIPTION_RENEWAL.value,
                description=f"Recurring payment for {plan.name} plan",
                period_start=period_start,
                period_end=period_end,
                paid_at=charged_at,
                invoice_number=generate_invoice_number("REC", subscription.user_id, now),
                payment_method=GATEWAY_PAYMENT_METHOD,
                meta={"external_subscription_id": external_id},
            )
        )
        if stored is None:
            logger.info(f"Charge {payment_id} already recorded; event ignored")
            return

        if subscription.status != SubscriptionStatus.ACTIVE.value:
            # First charge, possibly ahead of subscription.activated
            activated = await SubscriptionService(session).activate(subscription.id, plan, now, period=window)
            if activated is None:
                logger.warning(f"Charge {payment_id} recorded for canceled subscription {external_id}")
            return

        if subscription.current_period_end is not None and period_end <= subscription.current_period_end:
            logger.info(f"Charge {payment_id} paid for the current period of {external_id}")
            return

        rolled = await subscriptions.transition(
            subscription.id,
            from_statuses=(SubscriptionStatus.ACTIVE,),
            current_period_start=period_start,
            current_period_end=period_end,
            updated_at=now,
        )
        if not rolled:
            logger.warning(f"Charge {payment_id} recorded for canceled subscription {external_id}")
            return

        await UserRepository(session).update_billing(
            subscription.user_id,
            plan_id=plan.id,
            subscription_status=SubscriptionStatus.ACTIVE.value,
            subscription_end_date=period_end,
            next_billing_date=period_end,
            invoice_usage=0,
        )
        logger.info(f"Subscription {external_id} renewed until {period_end}")

    async def _on_subscription_updated(self, session: AsyncSession, payload: Dict[str, Any]) -> None:
        entity = _entity(payload, "subscription")
        external_id = entity.get("id")
        subscriptions = SubscriptionRepository(session)
        subscription = await subscriptions.get_by_external_id(external_id) if external_id else None
        if subscription is None:
            logger.warning(f"subscription.updated for unknown subscription {external_id}")
            return

        await subscriptions.merge_metadata(
            subscription.id,
            {"gateway_status": entity.get("status"), "gateway_updated_at": utcnow().isoformat()},
        )
