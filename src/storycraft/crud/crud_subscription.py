import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storycraft.core.errors import SubscriptionNotFound
from storycraft.crud.base import CRUDBase
from storycraft.models.subscription import Subscription as SubscriptionModel
from storycraft.schemas.enums import BillingCycle, PlanType, RenewalPolicy, SubscriptionStatus
from storycraft.utils.clock import add_days

logger = logging.getLogger(__name__)

MAX_UPSERT_ATTEMPTS = 3


class SubscriptionConflict(RuntimeError):
    """The subscription kept changing underneath an upsert."""


def renewal_window(
    existing: Optional[SubscriptionModel],
    duration_days: int,
    now: datetime,
    policy: RenewalPolicy,
) -> Tuple[datetime, datetime]:
    """Return ``(start_date, expires_at)`` for a new purchase.

    ``replace`` restarts the window at ``now``. ``stack`` appends the new
    duration to an active, unexpired window and keeps its start date.
    """
    if (
        policy is RenewalPolicy.STACK
        and existing is not None
        and existing.status == SubscriptionStatus.ACTIVE.value
        and existing.expires_at > now
    ):
        return existing.start_date, add_days(existing.expires_at, duration_days)
    return now, add_days(now, duration_days)


def superseded(existing: SubscriptionModel, paid_at: datetime) -> bool:
    """True when ``existing`` already reflects an order paid after ``paid_at``."""
    return existing.last_order_paid_at is not None and existing.last_order_paid_at > paid_at


class CRUDSubscription(CRUDBase[SubscriptionModel]):
    """One entitlement record per user."""

    async def get_by_user(self, db: AsyncSession, *, user_id: str) -> Optional[SubscriptionModel]:
        return await self.get(db, id=user_id)

    async def upsert(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        plan_type: PlanType | str,
        cycle: BillingCycle | str,
        duration_days: int,
        order_id: str,
        now: datetime,
        policy: RenewalPolicy = RenewalPolicy.REPLACE,
        paid_at: Optional[datetime] = None,
    ) -> Tuple[SubscriptionModel, bool]:
        """Apply ``order_id`` to the user's subscription.

        Returns the stored subscription and whether this call wrote it. An
        order that already activated the subscription is never applied twice,
        and an order paid before the one the subscription reflects is skipped:
        it was applied earlier and a later purchase has superseded it.
        """
        plan_type = PlanType(plan_type).value
        cycle = BillingCycle(cycle).value
        paid_at = paid_at or now

        for _ in range(MAX_UPSERT_ATTEMPTS):
            existing = await self.get_by_user(db, user_id=user_id)

            if existing is None:
                start_date, expires_at = renewal_window(None, duration_days, now, policy)
                db_obj = SubscriptionModel(
                    user_id=user_id,
                    plan_type=plan_type,
                    cycle=cycle,
                    status=SubscriptionStatus.ACTIVE.value,
                    start_date=start_date,
                    expires_at=expires_at,
                    last_order_id=order_id,
                    last_order_paid_at=paid_at,
                    created_at=now,
                    updated_at=now,
                )
                try:
                    created = await self.add(db, db_obj=db_obj)
                except IntegrityError:
                    # another activation inserted first; re-read and update instead
                    await db.rollback()
                    continue
                logger.info(f"Created subscription for user {user_id} from order {order_id}, expires {expires_at.isoformat()}")
                return created, True

            if existing.last_order_id == order_id:
                return existing, False
            if superseded(existing, paid_at):
                logger.info(
                    f"Order {order_id} for user {user_id} is older than applied order "
                    f"{existing.last_order_id}; subscription left unchanged"
                )
                return existing, False

            start_date, expires_at = renewal_window(existing, duration_days, now, policy)
            snapshot = SubscriptionModel.last_order_id
            condition = snapshot.is_(None) if existing.last_order_id is None else snapshot == existing.last_order_id
            won = await self.update_where(
                db,
                id=user_id,
                conditions=[condition],
                values={
                    "plan_type": plan_type,
                    "cycle": cycle,
                    "status": SubscriptionStatus.ACTIVE.value,
                    "start_date": start_date,
                    "expires_at": expires_at,
                    "last_order_id": order_id,
                    "last_order_paid_at": paid_at,
                    "updated_at": now,
                },
            )
            if won:
                logger.info(
                    f"Updated subscription for user {user_id} from order {order_id} "
                    f"({policy.value}), expires {expires_at.isoformat()}"
                )
                return await self.get_by_user(db, user_id=user_id), True

        raise SubscriptionConflict(f"Subscription for user {user_id} changed concurrently while applying {order_id}")

    async def cancel(self, db: AsyncSession, *, user_id: str, now: datetime) -> SubscriptionModel:
        """Mark the subscription cancelled. ``expires_at`` is left untouched."""
        updated = await self.update_where(
            db,
            id=user_id,
            conditions=[],
            values={"status": SubscriptionStatus.CANCELLED.value, "updated_at": now},
        )
        if not updated:
            raise SubscriptionNotFound()
        logger.info(f"Cancelled subscription for user {user_id}")
        return await self.get_by_user(db, user_id=user_id)


subscription = CRUDSubscription(SubscriptionModel, key_field="user_id")
