import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storycraft.core.errors import OrderNotFound
from storycraft.crud.base import CRUDBase
from storycraft.models.order import Order as OrderModel
from storycraft.schemas.enums import BillingCycle, OrderStatus, PaymentMethod, PlanType
from storycraft.schemas.order import OrderResponse
from storycraft.services.plan_catalog import PlanCatalog
from storycraft.utils.clock import epoch_millis

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_order_id(now: datetime) -> str:
    """Time-based id with a random suffix, e.g. ``ORDER_1718000000000_k3x9a0b1c``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"ORDER_{epoch_millis(now)}_{suffix}"


def is_abandoned(order: OrderModel, now: datetime) -> bool:
    """A pending order past its hold window was never completed."""
    return order.status == OrderStatus.PENDING.value and order.expires_at < now


def to_response(order: OrderModel, now: datetime) -> OrderResponse:
    response = OrderResponse.model_validate(order)
    response.is_abandoned = is_abandoned(order, now)
    return response


class CRUDOrder(CRUDBase[OrderModel]):
    """Durable purchase intents keyed by generated order id."""

    async def create(
        self,
        db: AsyncSession,
        *,
        catalog: PlanCatalog,
        user_id: str,
        plan_type: PlanType | str,
        cycle: BillingCycle | str,
        now: datetime,
        hold_minutes: int,
        order_id: Optional[str] = None,
    ) -> OrderModel:
        """Persist a pending order priced from the catalog.

        Raises InvalidPlan for unknown plan/cycle combinations.
        """
        plan = catalog.price_of(plan_type, cycle)
        db_obj = OrderModel(
            order_id=order_id or generate_order_id(now),
            user_id=user_id,
            plan_type=plan.plan_type.value,
            cycle=plan.cycle.value,
            plan_name=plan.display_name,
            price=plan.price,
            list_price=plan.list_price,
            duration_days=plan.duration_days,
            status=OrderStatus.PENDING.value,
            payment_method=None,
            payment_data=None,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(minutes=hold_minutes),
        )
        order = await self.add(db, db_obj=db_obj)
        logger.info(f"Created order {order.order_id} for user {user_id}: {order.plan_type}/{order.cycle} at {order.price}")
        return order

    async def create_with_id(
        self,
        db: AsyncSession,
        *,
        catalog: PlanCatalog,
        order_id: str,
        user_id: str,
        plan_type: PlanType | str,
        cycle: BillingCycle | str,
        now: datetime,
        hold_minutes: int,
    ) -> OrderModel:
        """Persist a pending order under a caller-known id.

        Used when a confirmation references an order that was never stored. If
        a concurrent request stored it first, the existing row is returned.
        """
        try:
            return await self.create(
                db,
                catalog=catalog,
                user_id=user_id,
                plan_type=plan_type,
                cycle=cycle,
                now=now,
                hold_minutes=hold_minutes,
                order_id=order_id,
            )
        except IntegrityError:
            await db.rollback()
            existing = await self.get_by_id(db, order_id=order_id)
            if existing is None:
                raise
            return existing

    async def get_by_id(self, db: AsyncSession, *, order_id: str) -> Optional[OrderModel]:
        """Unscoped lookup, for server-side confirmation paths only."""
        return await self.get(db, id=order_id)

    async def get_for_user(self, db: AsyncSession, *, order_id: str, user_id: str) -> OrderModel:
        """Get an order owned by ``user_id``.

        Orders belonging to someone else are reported exactly like missing ones.
        """
        order = await self.get_by_id(db, order_id=order_id)
        if order is None or order.user_id != user_id:
            raise OrderNotFound(order_id=order_id)
        return order

    async def list_by_user(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        now: Optional[datetime] = None,
        include_abandoned: bool = True,
    ) -> List[OrderModel]:
        """Orders of a user, newest first."""
        stmt = (
            select(OrderModel)
            .where(OrderModel.user_id == user_id)
            .order_by(OrderModel.created_at.desc(), OrderModel.order_id.desc())
        )
        result = await db.execute(stmt)
        orders = list(result.scalars().all())
        if not include_abandoned and now is not None:
            orders = [o for o in orders if not is_abandoned(o, now)]
        return orders

    async def mark_terminal(
        self,
        db: AsyncSession,
        *,
        order_id: str,
        status: OrderStatus,
        payment_method: PaymentMethod,
        payment_data: Optional[Dict[str, Any]],
        now: datetime,
    ) -> bool:
        """Move a pending order to ``paid`` or ``failed``.

        Only applies while the order is still pending, so repeated or
        concurrent confirmations cannot re-terminalize it. Returns True when
        this call performed the transition.
        """
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal order status")
        values = {
            "status": status.value,
            "payment_method": payment_method.value,
            "payment_data": payment_data,
            "updated_at": now,
        }
        if status is OrderStatus.PAID:
            values["paid_at"] = now
        won = await self.update_where(
            db,
            id=order_id,
            conditions=[OrderModel.status == OrderStatus.PENDING.value],
            values=values,
        )
        if won:
            logger.info(f"Order {order_id} -> {status.value} via {payment_method.value}")
        else:
            logger.info(f"Order {order_id} already terminal or missing; {status.value} not applied")
        return won

    async def mark_activated(self, db: AsyncSession, *, order_id: str, now: datetime) -> bool:
        """Record that subscription and projection reflect this paid order."""
        return await self.update_where(
            db,
            id=order_id,
            conditions=[
                OrderModel.status == OrderStatus.PAID.value,
                OrderModel.activated_at.is_(None),
            ],
            values={"activated_at": now, "updated_at": now},
        )

    async def attach_gateway_session(self, db: AsyncSession, *, order_id: str, session_id: str, now: datetime) -> bool:
        return await self.update_where(
            db,
            id=order_id,
            conditions=[OrderModel.status == OrderStatus.PENDING.value],
            values={"gateway_session_id": session_id, "updated_at": now},
        )


order = CRUDOrder(OrderModel, key_field="order_id")
