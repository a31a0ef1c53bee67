"""
Subscription Service

Subscription state machine and plan catalogue operations.

Transitions:
    INCOMPLETE --payment / activated--> ACTIVE
    TRIAL      --payment / activated--> ACTIVE
    ACTIVE     --charged-------------> ACTIVE (period rolled forward)
    any        --cancel--------------> CANCELED (terminal)

Activating a subscription cancels the user's other live subscriptions and
mirrors plan, status and billing window onto the user row.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from billflow.domain.billing import (
    ACTIVATABLE_SUBSCRIPTION_STATUSES,
    DEFAULT_PLANS,
    PlanInterval,
    SubscriptionStatus,
    compute_period_end,
    utcnow,
)
from billflow.infrastructure.db.models.plan import PlanModel
from billflow.infrastructure.db.models.subscription import SubscriptionModel
from billflow.infrastructure.db.models.user import UserModel
from billflow.infrastructure.db.repositories import (
    PlanRepository,
    SubscriptionRepository,
    UserRepository,
)
from billflow.infrastructure.exceptions import NotFoundError, ValidationError


logger = logging.getLogger(__name__)


class SubscriptionService:
    """
    Service for plan changes, cancellation and activation.

    All writes go through the caller's session; the caller commits.
    """

    def __init__(self, session: AsyncSession):
        self._session = session
        self._plans = PlanRepository(session)
        self._subscriptions = SubscriptionRepository(session)
        self._users = UserRepository(session)

    # =========================================================================
    # Plan Catalogue
    # =========================================================================

    async def list_plans(self) -> List[PlanModel]:
        return await self._plans.list_active()

    async def seed_default_plans(self) -> List[PlanModel]:
        """Insert or refresh the default catalogue. Safe to run repeatedly."""
        seeded = []
        for definition in DEFAULT_PLANS:
            values = {
                **definition,
                "interval": PlanInterval(definition["interval"]).value,
                "features": list(definition["features"]),
                "limits": dict(definition["limits"]),
            }
            seeded.append(await self._plans.upsert_by_name(values))
        logger.info(f"Seeded {len(seeded)} plans")
        return seeded

    async def _get_user(self, user_id: UUID) -> UserModel:
        user = await self._users.get_fresh(user_id)
        if user is None:
            raise NotFoundError("User not found", operation="get", table="users")
        return user

    async def _get_plan(self, plan_id) -> PlanModel:
        plan = await self._plans.get_by_id(plan_id)
        if plan is None or not plan.is_active:
            raise NotFoundError("Plan not found", operation="get", table="plans")
        return plan

    # =========================================================================
    # Lifecycle Primitives
    # =========================================================================

    async def activate(
        self,
        subscription_id: UUID,
        plan: PlanModel,
        now: datetime,
        metadata_patch: Optional[dict] = None,
        period: Optional[Tuple[datetime, datetime]] = None,
    ) -> Optional[SubscriptionModel]:
        """
        Move a subscription to ACTIVE.

        Args:
            period: (start, end) reported by the gateway; defaults to one
                billing cycle starting ``now``

        Returns:
            The activated subscription, or None if it was CANCELED
        """
        if period is None:
            period = (now, compute_period_end(now, plan.interval, plan.interval_count))
        period_start, period_end = period
        values = {
            "status": SubscriptionStatus.ACTIVE.value,
            "current_period_start": period_start,
            "current_period_end": period_end,
            "updated_at": now,
        }
        if metadata_patch:
            current = await self._subscriptions.lock(subscription_id)
            if current is not None:
                values["meta"] = {**(current.meta or {}), **metadata_patch}

        changed = await self._subscriptions.transition(
            subscription_id,
            from_statuses=ACTIVATABLE_SUBSCRIPTION_STATUSES,
            **values,
        )
        if not changed:
            logger.warning(f"Subscription {subscription_id} not activated: canceled or missing")
            return None

        subscription = await self._subscriptions.get_by_id(subscription_id, fresh=True)
        await self._subscriptions.cancel_other_live(subscription.user_id, subscription.id, now)
        await self._users.update_billing(
            subscription.user_id,
            plan_id=plan.id,
            subscription_status=SubscriptionStatus.ACTIVE.value,
            subscription_start_date=period_start,
            subscription_end_date=period_end,
            next_billing_date=period_end,
            trial_ends_at=None,
            invoice_usage=0,
        )
        logger.info(f"Subscription {subscription_id} active on plan {plan.name} until {period_end}")
        return subscription

    async def create_and_activate(
        self,
        user_id: UUID,
        plan: PlanModel,
        now: datetime,
        meta: Optional[dict] = None,
    ) -> SubscriptionModel:
        """New subscription for ``plan``, activated in the same unit."""
        subscription = await self._subscriptions.add(
            SubscriptionModel(
                user_id=user_id,
                plan_id=plan.id,
                status=SubscriptionStatus.INCOMPLETE.value,
                meta=dict(meta or {}),
            )
        )
        return await self.activate(subscription.id, plan, now)

    async def demote_to_free(self, user_id: UUID, now: datetime) -> bool:
        """
        Point the user back at the free plan.

        Idempotent. Skipped when no free plan exists or the user still holds
        another live subscription.
        """
        free_plan = await self._plans.get_free_plan()
        if free_plan is None:
            logger.warning(f"No free plan configured; user {user_id} not demoted")
            return False
        if await self._subscriptions.has_other_live(user_id):
            return False

        await self._users.update_billing(
            user_id,
            plan_id=free_plan.id,
            subscription_status=SubscriptionStatus.ACTIVE.value,
            subscription_end_date=None,
            next_billing_date=None,
            trial_ends_at=None,
            updated_at=now,
        )
        logger.info(f"User {user_id} moved to free plan")
        return True

    # =========================================================================
    # User Operations
    # =========================================================================

    async def change_plan(self, user_id: UUID, plan_id) -> Tuple[SubscriptionModel, bool]:
        """
        Switch the user to another plan.

        Free plans and plans with a trial take effect immediately. A paid
        plan without a trial yields an INCOMPLETE subscription that the
        first successful payment activates; the current one is untouched.

        Returns:
            (new subscription, whether payment is required)
        """
        await self._get_user(user_id)
        plan = await self._get_plan(plan_id)

        live = await self._subscriptions.get_live_for_user(user_id)
        if live is not None and live.plan_id == plan.id:
            raise ValidationError(f"Already subscribed to the {plan.name} plan")

        now = utcnow()

        if plan.price == 0:
            await self._subscriptions.cancel_other_live(user_id, None, now)
            subscription = await self._subscriptions.add(
                SubscriptionModel(
                    user_id=user_id,
                    plan_id=plan.id,
                    status=SubscriptionStatus.ACTIVE.value,
                    current_period_start=now,
                    current_period_end=compute_period_end(now, plan.interval, plan.interval_count),
                    meta={},
                )
            )
            await self._users.update_billing(
                user_id,
                plan_id=plan.id,
                subscription_status=SubscriptionStatus.ACTIVE.value,
                subscription_start_date=now,
                subscription_end_date=None,
                next_billing_date=None,
                trial_ends_at=None,
            )
            logger.info(f"User {user_id} switched to free plan {plan.name}")
            return subscription, False

        if plan.trial_period_days > 0:
            trial_end = now + timedelta(days=plan.trial_period_days)
            await self._subscriptions.cancel_other_live(user_id, None, now)
            subscription = await self._subscriptions.add(
                SubscriptionModel(
                    user_id=user_id,
                    plan_id=plan.id,
                    status=SubscriptionStatus.TRIAL.value,
                    current_period_start=now,
                    current_period_end=trial_end,
                    trial_start=now,
                    trial_end=trial_end,
                    meta={},
                )
            )
            await self._users.update_billing(
                user_id,
                plan_id=plan.id,
                subscription_status=SubscriptionStatus.TRIAL.value,
                subscription_start_date=now,
                subscription_end_date=trial_end,
                next_billing_date=trial_end,
                trial_ends_at=trial_end,
            )
            logger.info(f"User {user_id} started {plan.trial_period_days}-day trial of {plan.name}")
            return subscription, False

        subscription = await self._subscriptions.add(
            SubscriptionModel(
                user_id=user_id,
                plan_id=plan.id,
                status=SubscriptionStatus.INCOMPLETE.value,
                meta={},
            )
        )
        logger.info(f"User {user_id} requested {plan.name}; awaiting payment for {subscription.id}")
        return subscription, True

    async def cancel_subscription(self, user_id: UUID) -> SubscriptionModel:
        """
        Cancel the user's live subscription and demote them to free.

        Races with a gateway cancellation converge on the same end state.
        """
        live = await self._subscriptions.get_live_for_user(user_id)
        if live is None:
            raise NotFoundError("No active subscription found", operation="cancel", table="subscriptions")

        now = utcnow()
        changed = await self._subscriptions.cancel(live.id, now, auto_renew=False, updated_at=now)
        if not changed:
            logger.info(f"Subscription {live.id} was already canceled")

        await self.demote_to_free(user_id, now)
        return await self._subscriptions.get_by_id(live.id, fresh=True)

    async def get_current_subscription(
        self,
        user_id: UUID,
    ) -> Tuple[UserModel, Optional[Tuple[SubscriptionModel, PlanModel]]]:
        """The user's billing projection and latest subscription with plan."""
        user = await self._get_user(user_id)
        latest = await self._subscriptions.get_latest_for_user(user_id)
        return user, latest

    async def get_plan(self, plan_id) -> Optional[PlanModel]:
        return await self._plans.get_by_id(plan_id)

    async def initialize_billing(self, user_id: UUID) -> Tuple[PlanModel, bool]:
        """
        Assign the free plan to a user without one.

        Returns:
            (the user's plan, whether this call assigned it)
        """
        user = await self._get_user(user_id)
        if user.plan_id is not None:
            plan = await self._plans.get_by_id(user.plan_id)
            if plan is not None:
                return plan, False

        free_plan = await self._plans.get_free_plan()
        if free_plan is None:
            raise NotFoundError("Free plan not found", operation="initialize", table="plans")

        now = utcnow()
        await self._users.update_billing(
            user_id,
            plan_id=free_plan.id,
            subscription_status=SubscriptionStatus.ACTIVE.value,
            subscription_start_date=now,
            invoice_usage=0,
        )
        logger.info(f"Initialized billing for user {user_id} on {free_plan.name}")
        return free_plan, True
