"""Read-path entitlement resolution.

The effective plan is always derived from the live subscription record;
``expired`` is computed here and never stored. The user projection is
corrected whenever a read finds it out of date.
"""
import logging
from datetime import datetime
from typing import Optional, Tuple

from storycraft.crud.crud_subscription import subscription as crud_subscription
from storycraft.crud.crud_user import user as crud_user
from storycraft.models.subscription import Subscription as SubscriptionModel
from storycraft.schemas.enums import FREE_PLAN, SubscriptionStatus
from storycraft.schemas.subscription import SubscriptionResponse, SubscriptionView
from storycraft.schemas.user import UserInfo
from storycraft.services.context import BillingContext

logger = logging.getLogger(__name__)


def derive_subscription_view(
    user_id: str,
    sub: Optional[SubscriptionModel],
    now: datetime,
) -> SubscriptionView:
    """Compute the effective subscription as of ``now``.

    Expired windows report ``expired`` whatever the stored status. A cancelled
    window revokes access immediately but still reports its expiry date.
    """
    if sub is None:
        return SubscriptionView(user_id=user_id, plan_type=FREE_PLAN, status=SubscriptionStatus.FREE)

    is_expired = sub.expires_at < now
    if is_expired:
        status = SubscriptionStatus.EXPIRED
    else:
        status = SubscriptionStatus(sub.status)

    active = status is SubscriptionStatus.ACTIVE
    return SubscriptionView(
        user_id=user_id,
        plan_type=sub.plan_type if active else FREE_PLAN,
        subscribed_plan_type=sub.plan_type,
        cycle=sub.cycle,
        status=status,
        start_date=sub.start_date,
        expires_at=sub.expires_at,
        is_expired=is_expired,
        days_left=max((sub.expires_at - now).days, 0) if active else 0,
    )


def projection_for(view: SubscriptionView) -> Tuple[str, Optional[datetime]]:
    """``(user_plan, subscription_expires_at)`` the user record should cache."""
    if view.is_active:
        return view.plan_type, view.expires_at
    return FREE_PLAN, None


class SubscriptionService:
    def __init__(self, ctx: BillingContext):
        self.ctx = ctx

    async def _repair_projection(self, view: SubscriptionView, now: datetime) -> None:
        user = await crud_user.get_by_user_id(self.ctx.db, user_id=view.user_id)
        if user is None:
            return
        user_plan, expires_at = projection_for(view)
        if user.user_plan != user_plan or user.subscription_expires_at != expires_at:
            logger.info(f"Repairing stale projection for user {view.user_id}: {user.user_plan} -> {user_plan}")
            await crud_user.refresh_projection(
                self.ctx.db,
                user_id=view.user_id,
                user_plan=user_plan,
                expires_at=expires_at,
                now=now,
            )

    async def get_subscription(self, user_id: str) -> SubscriptionView:
        now = self.ctx.now()
        sub = await crud_subscription.get_by_user(self.ctx.db, user_id=user_id)
        view = derive_subscription_view(user_id, sub, now)
        await self._repair_projection(view, now)
        return view

    async def cancel_subscription(self, user_id: str) -> SubscriptionResponse:
        """Cancel immediately; raises SubscriptionNotFound when there is nothing to cancel."""
        now = self.ctx.now()
        sub = await crud_subscription.cancel(self.ctx.db, user_id=user_id, now=now)
        view = derive_subscription_view(user_id, sub, now)
        user_plan, expires_at = projection_for(view)
        await crud_user.refresh_projection(
            self.ctx.db,
            user_id=user_id,
            user_plan=user_plan,
            expires_at=expires_at,
            now=now,
        )
        return SubscriptionResponse.model_validate(sub)

    async def get_user_info(self, user_id: str) -> UserInfo:
        """User profile with plan fields resolved through the subscription."""
        view = await self.get_subscription(user_id)
        user = await crud_user.get_by_user_id(self.ctx.db, user_id=user_id)
        user_plan, expires_at = projection_for(view)
        return UserInfo(
            user_id=user_id,
            name=user.name if user else None,
            email=user.email if user else None,
            user_plan=user_plan,
            subscription_status=view.status,
            subscription_expires_at=expires_at,
        )

    async def has_active_plan(self, user_id: str) -> bool:
        return await crud_user.has_active_plan(self.ctx.db, user_id=user_id, now=self.ctx.now())
