import logging

from fastapi import APIRouter, status

from storycraft.api.auth_deps import ContextDep, CurrentUserId
from storycraft.crud.crud_order import order as crud_order
from storycraft.crud.crud_order import to_response
from storycraft.schemas.order import CheckoutSessionRequest, CheckoutSessionResponse, OrderCreate, OrderResponse
from storycraft.services.payment_router import PaymentConfirmationRouter

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(order_in: OrderCreate, user_id: CurrentUserId, ctx: ContextDep) -> OrderResponse:
    """Create a pending order priced from the plan catalog."""
    now = ctx.now()
    order = await crud_order.create(
        ctx.db,
        catalog=ctx.catalog,
        user_id=user_id,
        plan_type=order_in.plan_type,
        cycle=order_in.cycle,
        now=now,
        hold_minutes=ctx.settings.ORDER_HOLD_MINUTES,
    )
    return to_response(order, now)


@router.get("", response_model=list[OrderResponse])
async def list_orders(user_id: CurrentUserId, ctx: ContextDep, include_abandoned: bool = True) -> list[OrderResponse]:
    """Get the caller's orders, newest first."""
    now = ctx.now()
    orders = await crud_order.list_by_user(ctx.db, user_id=user_id, now=now, include_abandoned=include_abandoned)
    return [to_response(o, now) for o in orders]


@router.get("/{order_id}", response_model=OrderResponse)
async def read_order(order_id: str, user_id: CurrentUserId, ctx: ContextDep) -> OrderResponse:
    """Get one of the caller's orders."""
    order = await crud_order.get_for_user(ctx.db, order_id=order_id, user_id=user_id)
    return to_response(order, ctx.now())


@router.post("/{order_id}/checkout", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    order_id: str,
    checkout_in: CheckoutSessionRequest,
    user_id: CurrentUserId,
    ctx: ContextDep,
) -> CheckoutSessionResponse:
    """Open a hosted checkout session for a pending order."""
    return await PaymentConfirmationRouter(ctx).create_checkout_session(
        user_id=user_id,
        order_id=order_id,
        success_url=checkout_in.success_url,
        cancel_url=checkout_in.cancel_url,
    )
