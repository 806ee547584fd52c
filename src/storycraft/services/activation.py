"""Order-to-subscription activation.

``confirm`` moves a pending order to ``paid`` and then brings the
subscription and the user projection in line with it. There is no
transaction spanning the three records, so the writes are ordered and each
one is idempotent:

1. order ``pending -> paid`` (conditional; exactly one confirmer wins)
2. subscription upsert keyed by the order id (skipped once a later-paid
   order has been applied)
3. user projection refresh (skipped when already in sync)
4. order ``activated_at`` completion marker

A crash between 1 and 4 leaves a paid, not-yet-activated order. Confirming
it again skips step 1 and re-runs 2-4, which detect work already done.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from storycraft.core.errors import InvalidStateTransition, OrderNotFound, PartialActivationFailure
from storycraft.crud.crud_order import order as crud_order
from storycraft.crud.crud_subscription import SubscriptionConflict
from storycraft.crud.crud_subscription import subscription as crud_subscription
from storycraft.crud.crud_user import user as crud_user
from storycraft.models.order import Order as OrderModel
from storycraft.schemas.enums import OrderStatus, PaymentMethod
from storycraft.schemas.payment import ConfirmedPayment, PaymentResult
from storycraft.services.context import BillingContext
from storycraft.services.entitlement import derive_subscription_view, projection_for

logger = logging.getLogger(__name__)


class ActivationTransaction:
    def __init__(self, ctx: BillingContext):
        self.ctx = ctx

    async def _load(self, order_id: str) -> OrderModel:
        order = await crud_order.get_by_id(self.ctx.db, order_id=order_id)
        if order is None:
            raise OrderNotFound(order_id=order_id)
        return order

    async def confirm(self, payment: ConfirmedPayment) -> PaymentResult:
        """Activate the subscription bought by ``payment.order_id``."""
        db = self.ctx.db
        now = self.ctx.now()
        order_id = payment.order_id

        order = await self._load(order_id)
        user_id = order.user_id
        if user_id != payment.user_id:
            logger.warning(f"Confirmation for order {order_id} names user {payment.user_id}, order belongs to another user")
            raise OrderNotFound(order_id=order_id)
        if order.status == OrderStatus.FAILED.value:
            raise InvalidStateTransition("Order has already failed and cannot be paid", order_id=order_id)
        if order.status == OrderStatus.PAID.value and order.activated_at is not None:
            logger.info(f"Order {order_id} already activated, nothing to do")
            return PaymentResult(order_id=order_id, status=OrderStatus.PAID)

        # entitlement always comes from what was bought, never from the payload
        plan = self.ctx.catalog.price_of(order.plan_type, order.cycle)
        if (payment.plan_type.value, payment.cycle.value) != (order.plan_type, order.cycle):
            logger.warning(
                f"Confirmation for order {order_id} claims {payment.plan_type.value}/{payment.cycle.value}, "
                f"order is {order.plan_type}/{order.cycle}; using the order"
            )

        paid_at = order.paid_at
        if order.status == OrderStatus.PENDING.value:
            won = await crud_order.mark_terminal(
                db,
                order_id=order_id,
                status=OrderStatus.PAID,
                payment_method=payment.payment_method,
                payment_data=payment.payment_data,
                now=now,
            )
            if won:
                paid_at = now
            else:
                order = await self._load(order_id)
                if order.status == OrderStatus.FAILED.value:
                    raise InvalidStateTransition("Order has already failed and cannot be paid", order_id=order_id)
                if order.activated_at is not None:
                    return PaymentResult(order_id=order_id, status=OrderStatus.PAID)
                paid_at = order.paid_at
                logger.info(f"Order {order_id} was paid by a concurrent confirmation; verifying activation")
        else:
            logger.warning(f"Order {order_id} is paid but not activated; resuming activation")

        try:
            sub, sub_written = await crud_subscription.upsert(
                db,
                user_id=user_id,
                plan_type=plan.plan_type,
                cycle=plan.cycle,
                duration_days=plan.duration_days,
                order_id=order_id,
                now=now,
                policy=self.ctx.renewal_policy,
                paid_at=paid_at or now,
            )
            view = derive_subscription_view(user_id, sub, now)
            user_plan, expires_at = projection_for(view)
            projection_written = await crud_user.refresh_projection(
                db,
                user_id=user_id,
                user_plan=user_plan,
                expires_at=expires_at,
                now=now,
            )
            await crud_order.mark_activated(db, order_id=order_id, now=now)
        except (SQLAlchemyError, SubscriptionConflict) as e:
            await db.rollback()
            logger.error(f"Partial activation for order {order_id}: order is paid, downstream write failed: {str(e)}")
            raise PartialActivationFailure(order_id=order_id) from e

        logger.info(
            f"Activated order {order_id} for user {user_id} "
            f"(subscription written={sub_written}, projection written={projection_written})"
        )
        return PaymentResult(order_id=order_id, status=OrderStatus.PAID)

    async def reject(
        self,
        order_id: str,
        payment_data: Optional[Dict[str, Any]] = None,
        payment_method: PaymentMethod = PaymentMethod.CALLBACK,
    ) -> PaymentResult:
        """Mark a pending order failed. Terminal orders are returned unchanged."""
        order = await self._load(order_id)
        won = await crud_order.mark_terminal(
            self.ctx.db,
            order_id=order_id,
            status=OrderStatus.FAILED,
            payment_method=payment_method,
            payment_data=payment_data,
            now=self.ctx.now(),
        )
        if not won:
            order = await self._load(order_id)
            logger.info(f"Order {order_id} is already {order.status}; rejection ignored")
            return PaymentResult(order_id=order_id, status=OrderStatus(order.status))
        return PaymentResult(order_id=order_id, status=OrderStatus.FAILED)
