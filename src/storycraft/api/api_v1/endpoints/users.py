from fastapi import APIRouter

from storycraft.api.auth_deps import ContextDep, CurrentUserId
from storycraft.schemas.user import UserInfo
from storycraft.services.entitlement import SubscriptionService

router = APIRouter()


@router.get("/me", response_model=UserInfo)
async def read_user_me(user_id: CurrentUserId, ctx: ContextDep) -> UserInfo:
    """Get current user with the effective plan."""
    return await SubscriptionService(ctx).get_user_info(user_id)
