"""Confirmation channels.

Each channel only validates and extracts a :class:`ConfirmedPayment`; all of
them hand off to :meth:`ActivationTransaction.confirm` (or ``reject``) and
never write subscriptions or projections themselves.
"""
import logging
import secrets
import string
from typing import Any, Dict, Optional

from storycraft.core.errors import (
    InvalidStateTransition,
    OrderNotFound,
    PaymentNotCompleted,
    SimulatedPaymentsDisabled,
)
from storycraft.crud.crud_order import is_abandoned
from storycraft.crud.crud_order import order as crud_order
from storycraft.models.order import Order as OrderModel
from storycraft.schemas.enums import BillingCycle, OrderStatus, PaymentMethod, PlanType
from storycraft.schemas.order import CheckoutSessionResponse
from storycraft.schemas.payment import ConfirmedPayment, PaymentResult, SimulatedPaymentRequest
from storycraft.services.activation import ActivationTransaction
from storycraft.services.context import BillingContext
from storycraft.utils.clock import epoch_millis

logger = logging.getLogger(__name__)

CALLBACK_SUCCESS = "success"
_TXN_ALPHABET = string.ascii_lowercase + string.digits


class PaymentConfirmationRouter:
    def __init__(self, ctx: BillingContext):
        self.ctx = ctx
        self.activation = ActivationTransaction(ctx)

    async def _ensure_order(
        self,
        *,
        order_id: str,
        user_id: str,
        plan_type: PlanType | str,
        cycle: BillingCycle | str,
    ) -> OrderModel:
        """Load the caller's order, creating it pending when it was never stored."""
        existing = await crud_order.get_by_id(self.ctx.db, order_id=order_id)
        if existing is not None:
            if existing.user_id != user_id:
                raise OrderNotFound(order_id=order_id)
            return existing
        logger.info(f"Order {order_id} not stored yet; creating it from the confirmation payload")
        created = await crud_order.create_with_id(
            self.ctx.db,
            catalog=self.ctx.catalog,
            order_id=order_id,
            user_id=user_id,
            plan_type=plan_type,
            cycle=cycle,
            now=self.ctx.now(),
            hold_minutes=self.ctx.settings.ORDER_HOLD_MINUTES,
        )
        if created.user_id != user_id:
            raise OrderNotFound(order_id=order_id)
        return created

    async def create_checkout_session(
        self,
        *,
        user_id: str,
        order_id: str,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSessionResponse:
        """Open a hosted checkout for the caller's pending order."""
        now = self.ctx.now()
        order = await crud_order.get_for_user(self.ctx.db, order_id=order_id, user_id=user_id)
        if order.status != OrderStatus.PENDING.value:
            raise InvalidStateTransition(f"Order is already {order.status}", order_id=order_id)
        if is_abandoned(order, now):
            raise InvalidStateTransition("Order hold window has passed; create a new order", order_id=order_id)

        plan = self.ctx.catalog.price_of(order.plan_type, order.cycle)
        session = await self.ctx.gateway.create_checkout_session(
            order_id=order_id,
            user_id=user_id,
            plan=plan,
            success_url=success_url,
            cancel_url=cancel_url,
        )
        await crud_order.attach_gateway_session(self.ctx.db, order_id=order_id, session_id=session.id, now=now)
        return CheckoutSessionResponse(session_id=session.id, url=session.url or "")

    async def confirm_via_gateway(self, *, user_id: str, session_id: str) -> PaymentResult:
        """Confirm a hosted checkout. Nothing is written unless the gateway reports ``paid``."""
        session = await self.ctx.gateway.retrieve_checkout_session(session_id)
        if not session.is_paid:
            logger.info(f"Checkout session {session_id} reports payment_status={session.payment_status}")
            raise PaymentNotCompleted()

        metadata = session.metadata
        order_id = metadata.get("orderId")
        plan_type = metadata.get("planType")
        cycle = metadata.get("cycle")
        if not order_id or not plan_type or not cycle:
            raise PaymentNotCompleted("Checkout session is missing order information")
        if metadata.get("userId") != user_id:
            logger.warning(f"Checkout session {session_id} belongs to another user")
            raise OrderNotFound(order_id=order_id)

        order = await self._ensure_order(order_id=order_id, user_id=user_id, plan_type=plan_type, cycle=cycle)
        payment = ConfirmedPayment(
            order_id=order.order_id,
            user_id=user_id,
            plan_type=order.plan_type,
            cycle=order.cycle,
            payment_method=PaymentMethod.GATEWAY,
            payment_data={
                "session_id": session.id,
                "payment_intent_id": session.payment_intent,
                "amount": session.amount_total,
                "currency": session.currency,
                "customer_email": session.customer_email,
            },
        )
        return await self.activation.confirm(payment)

    async def confirm_via_callback(
        self,
        *,
        order_id: str,
        payment_status: str,
        payment_data: Optional[Dict[str, Any]] = None,
    ) -> PaymentResult:
        """Server-side payment notification; anything but ``success`` fails the order."""
        order = await crud_order.get_by_id(self.ctx.db, order_id=order_id)
        if order is None:
            raise OrderNotFound(order_id=order_id)
        if payment_status != CALLBACK_SUCCESS:
            logger.info(f"Callback for order {order_id} reports {payment_status!r}")
            return await self.activation.reject(order_id, payment_data, PaymentMethod.CALLBACK)

        payment = ConfirmedPayment(
            order_id=order_id,
            user_id=order.user_id,
            plan_type=order.plan_type,
            cycle=order.cycle,
            payment_method=PaymentMethod.CALLBACK,
            payment_data=payment_data,
        )
        return await self.activation.confirm(payment)

    async def confirm_simulated(self, *, user_id: str, payload: SimulatedPaymentRequest) -> PaymentResult:
        """Treat a test payload as a successful payment (non-production only)."""
        if not self.ctx.settings.simulated_payments_enabled:
            raise SimulatedPaymentsDisabled()

        order = await self._ensure_order(
            order_id=payload.order_id,
            user_id=user_id,
            plan_type=payload.plan_type,
            cycle=payload.cycle,
        )
        if (order.plan_type, order.cycle) != (payload.plan_type.value, payload.cycle.value):
            raise InvalidStateTransition("Payload does not match the stored order", order_id=order.order_id)

        now = self.ctx.now()
        suffix = "".join(secrets.choice(_TXN_ALPHABET) for _ in range(9))
        payment = ConfirmedPayment(
            order_id=order.order_id,
            user_id=user_id,
            plan_type=order.plan_type,
            cycle=order.cycle,
            payment_method=PaymentMethod.SIMULATED,
            payment_data={
                "method": PaymentMethod.SIMULATED.value,
                "timestamp": now.isoformat(),
                "transaction_id": f"TXN_{epoch_millis(now)}_{suffix}",
            },
        )
        return await self.activation.confirm(payment)
