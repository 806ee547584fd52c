from fastapi import APIRouter

from storycraft.api.auth_deps import ContextDep, CurrentUserId
from storycraft.schemas.subscription import SubscriptionResponse, SubscriptionView
from storycraft.services.entitlement import SubscriptionService

router = APIRouter()


@router.get("/me", response_model=SubscriptionView)
async def read_my_subscription(user_id: CurrentUserId, ctx: ContextDep) -> SubscriptionView:
    """Effective subscription, with expiry computed now."""
    return await SubscriptionService(ctx).get_subscription(user_id)


@router.post("/me/cancel", response_model=SubscriptionResponse)
async def cancel_my_subscription(user_id: CurrentUserId, ctx: ContextDep) -> SubscriptionResponse:
    """Cancel the caller's subscription; access is revoked immediately."""
    return await SubscriptionService(ctx).cancel_subscription(user_id)
