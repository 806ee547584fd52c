from fastapi import APIRouter, Depends

from storycraft.api.auth_deps import ContextDep, CurrentUserId, verify_callback_secret
from storycraft.schemas.payment import (
    GatewayConfirmRequest,
    PaymentCallbackRequest,
    PaymentResult,
    SimulatedPaymentRequest,
)
from storycraft.services.payment_router import PaymentConfirmationRouter

router = APIRouter()


@router.post("/gateway/confirm", response_model=PaymentResult)
async def confirm_gateway_payment(
    confirm_in: GatewayConfirmRequest,
    user_id: CurrentUserId,
    ctx: ContextDep,
) -> PaymentResult:
    """Confirm a completed hosted checkout and activate the subscription."""
    return await PaymentConfirmationRouter(ctx).confirm_via_gateway(user_id=user_id, session_id=confirm_in.session_id)


@router.post("/callback", response_model=PaymentResult, dependencies=[Depends(verify_callback_secret)])
async def payment_callback(callback_in: PaymentCallbackRequest, ctx: ContextDep) -> PaymentResult:
    """Server-to-server payment notification."""
    return await PaymentConfirmationRouter(ctx).confirm_via_callback(
        order_id=callback_in.order_id,
        payment_status=callback_in.payment_status,
        payment_data=callback_in.payment_data,
    )


@router.post("/simulate", response_model=PaymentResult)
async def simulate_payment(
    payload: SimulatedPaymentRequest,
    user_id: CurrentUserId,
    ctx: ContextDep,
) -> PaymentResult:
    """Mark an order paid without a gateway. Disabled in production."""
    return await PaymentConfirmationRouter(ctx).confirm_simulated(user_id=user_id, payload=payload)
